from __future__ import annotations

from typing import Optional

import pytest

from adapters.memory_storage import MemoryStorage
from adapters.redis_storage import RedisStorage
from adapters.sqlite_storage import SQLiteStorage
from adapters.storage_factory import build_storage
from core.config import AdmissionConfig
from core.errors import ConfigurationError
from core.models import AdTemplate, BotConfig, ConfigPatch, PendingRequest, Suspected, TrafficButton
from core.session import ModeratorSession

DEFAULTS = BotConfig(forward_target_id="-1001", admin_ids=[1, 2], welcome_text="hi")


class FakeRedis:
    """The handful of redis-py commands the adapter uses, kept in dicts."""

    def __init__(self) -> None:
        self.strings: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.hashes: dict[str, dict[str, str]] = {}

    def get(self, key: str) -> Optional[str]:
        return self.strings.get(key)

    def set(self, key: str, value: str, nx: bool = False) -> Optional[bool]:
        if nx and key in self.strings:
            return None
        self.strings[key] = value
        return True

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    def sadd(self, key: str, value: str) -> int:
        bucket = self.sets.setdefault(key, set())
        added = value not in bucket
        bucket.add(value)
        return int(added)

    def srem(self, key: str, value: str) -> int:
        bucket = self.sets.get(key, set())
        removed = value in bucket
        bucket.discard(value)
        return int(removed)

    def hget(self, key: str, field: str) -> Optional[str]:
        return self.hashes.get(key, {}).get(field)

    def hset(self, key: str, field: str, value: str) -> int:
        self.hashes.setdefault(key, {})[field] = value
        return 1

    def hdel(self, key: str, field: str) -> int:
        return int(self.hashes.get(key, {}).pop(field, None) is not None)

    def hvals(self, key: str) -> list[str]:
        return list(self.hashes.get(key, {}).values())


@pytest.fixture(params=["sqlite", "redis", "memory"])
def store(request, tmp_path):
    if request.param == "sqlite":
        backend = SQLiteStorage(str(tmp_path / "moderator.db"), DEFAULTS)
    elif request.param == "redis":
        backend = RedisStorage(FakeRedis(), DEFAULTS, prefix="test")
    else:
        backend = MemoryStorage(DEFAULTS)
    backend.init()
    return backend


def _request(request_id: str, created_at: int = 1_000, suspected: Optional[Suspected] = None) -> PendingRequest:
    return PendingRequest(
        id=request_id,
        source_chat_id=-100200,
        message_id=7,
        from_id=42,
        from_name="@alice",
        created_at=created_at,
        suspected=suspected,
    )


def test_init_seeds_defaults_once(store) -> None:
    assert store.get_config() == DEFAULTS

    store.set_config(ConfigPatch(welcome_text="changed"))
    store.init()

    assert store.get_config().welcome_text == "changed"


def test_empty_patch_is_a_no_op(store) -> None:
    before = store.get_config()
    store.set_config(ConfigPatch())
    assert store.get_config() == before


def test_set_config_merges_and_clamps(store) -> None:
    store.set_config(ConfigPatch(default_threshold=3.0, strict_template=True))
    store.set_config(ConfigPatch(sources_allow=["@news"], metrics={"pending": 2, "approved": 1, "rejected": 0}))

    config = store.get_config()

    assert config.default_threshold == 1.0
    assert config.strict_template is True
    assert config.sources_allow == ["@news"]
    assert config.metrics == {"pending": 2, "approved": 1, "rejected": 0}
    assert config.admin_ids == [1, 2]


def test_buttons_replace_and_sort_by_order(store) -> None:
    store.set_buttons(
        [
            TrafficButton(text="C", url="https://c.example", order=3),
            TrafficButton(text="A", url="https://a.example", order=1),
            TrafficButton(text="B", url="https://b.example", order=2),
        ]
    )
    assert [button.text for button in store.list_buttons()] == ["A", "B", "C"]

    store.set_buttons([TrafficButton(text="Only", url="https://only.example", order=5)])
    assert store.list_buttons() == [TrafficButton(text="Only", url="https://only.example", order=5)]


def test_templates_keep_insertion_order_and_clamp(store) -> None:
    store.set_templates(
        [
            AdTemplate(name="b", content="second", threshold=1.5),
            AdTemplate(name="a", content="first\nline"),
        ]
    )

    templates = store.list_templates()

    assert [template.name for template in templates] == ["b", "a"]
    assert templates[0].threshold == 1.0
    assert templates[1].threshold is None
    assert templates[1].content == "first\nline"


def test_session_template_cache_matches_store(store) -> None:
    session = ModeratorSession(store, AdmissionConfig())
    session.load()

    session.replace_templates([AdTemplate(name="loose", content="anything", threshold=3.0)])

    assert session.templates == store.list_templates()
    assert session.templates[0].threshold == 1.0


def test_allow_and_block_have_set_semantics(store) -> None:
    store.add_allow(5)
    store.add_allow(5)
    store.add_allow(3)
    store.remove_allow(99)
    assert store.list_allow() == [3, 5]

    store.add_block(8)
    store.remove_block(8)
    store.remove_block(8)
    assert store.list_block() == []


def test_pending_is_retrievable_until_deleted(store) -> None:
    first = _request("1000_-100200_7", suspected=Suspected(template="promo", score=0.75))
    second = _request("500_-100200_8", created_at=500)

    store.set_pending(first)
    store.set_pending(second)

    assert store.get_pending(first.id) == first
    assert [request.id for request in store.list_pending()] == [second.id, first.id]

    store.del_pending(first.id)
    store.del_pending(first.id)

    assert store.get_pending(first.id) is None
    assert store.get_pending("missing") is None
    assert store.list_pending() == [second]


def test_set_pending_upserts(store) -> None:
    store.set_pending(_request("x"))
    store.set_pending(_request("x", suspected=Suspected(template="t", score=0.5)))

    assert store.get_pending("x").suspected == Suspected(template="t", score=0.5)
    assert len(store.list_pending()) == 1


def test_redis_keys_are_prefixed() -> None:
    client = FakeRedis()
    storage = RedisStorage(client, DEFAULTS, prefix="bot1")
    storage.init()
    storage.add_block(4)
    storage.set_pending(_request("r1"))

    assert "bot1:config" in client.strings
    assert client.sets["bot1:blocklist"] == {"4"}
    assert "r1" in client.hashes["bot1:pending"]


def test_build_storage_selects_backend(tmp_path) -> None:
    assert isinstance(build_storage("memory", DEFAULTS), MemoryStorage)
    assert isinstance(build_storage("SQLite", DEFAULTS, sqlite_path=str(tmp_path / "x.db")), SQLiteStorage)

    with pytest.raises(ConfigurationError):
        build_storage("mongo", DEFAULTS)
    with pytest.raises(ConfigurationError):
        build_storage("sqlite", DEFAULTS)
