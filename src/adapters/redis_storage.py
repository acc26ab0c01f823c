"""Redis storage adapter.

Implements the core StoragePort on a key-value store. Catalogs live as JSON
documents under prefixed keys, id lists as sets and the review queue as a
hash, so each replace is a single SET.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

import redis

from core.config import merge_config
from core.models import AdTemplate, BotConfig, ConfigPatch, PendingRequest, TrafficButton
from core.template_matcher import clamp_threshold


class RedisStorage:
    """StoragePort backed by a synchronous redis client."""

    def __init__(self, client: Any, defaults: Optional[BotConfig] = None, prefix: str = "tgmod") -> None:
        self._client = client
        self._defaults = defaults or BotConfig()
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, defaults: Optional[BotConfig] = None, prefix: str = "tgmod") -> "RedisStorage":
        client = redis.Redis.from_url(url, decode_responses=True)
        return cls(client, defaults=defaults, prefix=prefix)

    def _key(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    def _read_json(self, name: str) -> Any:
        raw = self._client.get(self._key(name))
        if raw is None:
            return None
        return json.loads(raw)

    def _write_json(self, name: str, value: Any) -> None:
        self._client.set(self._key(name), json.dumps(value))

    def init(self) -> None:
        # NX keeps an existing document; only the first start seeds it.
        self._client.set(self._key("config"), json.dumps(self._defaults.to_dict()), nx=True)

    def get_config(self) -> BotConfig:
        raw = self._read_json("config")
        if raw:
            return BotConfig.from_dict(raw)
        self._write_json("config", self._defaults.to_dict())
        return self._defaults

    def set_config(self, patch: ConfigPatch) -> None:
        self._write_json("config", merge_config(self.get_config(), patch).to_dict())

    def list_buttons(self) -> List[TrafficButton]:
        raw = self._read_json("buttons") or []
        buttons = [TrafficButton(text=item["text"], url=item["url"], order=int(item["order"])) for item in raw]
        return sorted(buttons, key=lambda button: button.order)

    def set_buttons(self, buttons: List[TrafficButton]) -> None:
        self._write_json(
            "buttons",
            [{"text": button.text, "url": button.url, "order": button.order} for button in buttons],
        )

    def list_templates(self) -> List[AdTemplate]:
        raw = self._read_json("templates") or []
        templates = []
        for item in raw:
            threshold = item.get("threshold")
            templates.append(
                AdTemplate(
                    name=item["name"],
                    content=item["content"],
                    threshold=None if threshold is None else clamp_threshold(threshold),
                )
            )
        return templates

    def set_templates(self, templates: List[AdTemplate]) -> None:
        self._write_json(
            "templates",
            [
                {
                    "name": template.name,
                    "content": template.content,
                    "threshold": None if template.threshold is None else clamp_threshold(template.threshold),
                }
                for template in templates
            ],
        )

    def _members(self, name: str) -> List[int]:
        return sorted(int(value) for value in self._client.smembers(self._key(name)))

    def list_allow(self) -> List[int]:
        return self._members("allowlist")

    def add_allow(self, user_id: int) -> None:
        self._client.sadd(self._key("allowlist"), str(int(user_id)))

    def remove_allow(self, user_id: int) -> None:
        self._client.srem(self._key("allowlist"), str(int(user_id)))

    def list_block(self) -> List[int]:
        return self._members("blocklist")

    def add_block(self, user_id: int) -> None:
        self._client.sadd(self._key("blocklist"), str(int(user_id)))

    def remove_block(self, user_id: int) -> None:
        self._client.srem(self._key("blocklist"), str(int(user_id)))

    def get_pending(self, request_id: str) -> Optional[PendingRequest]:
        raw = self._client.hget(self._key("pending"), request_id)
        if raw is None:
            return None
        return PendingRequest.from_dict(json.loads(raw))

    def set_pending(self, request: PendingRequest) -> None:
        self._client.hset(self._key("pending"), request.id, json.dumps(request.to_dict()))

    def del_pending(self, request_id: str) -> None:
        self._client.hdel(self._key("pending"), request_id)

    def list_pending(self) -> List[PendingRequest]:
        requests = [PendingRequest.from_dict(json.loads(raw)) for raw in self._client.hvals(self._key("pending"))]
        return sorted(requests, key=lambda request: request.created_at)
