"""Select a storage backend at construction time."""

from __future__ import annotations

import logging
from typing import Optional

from adapters.memory_storage import MemoryStorage
from adapters.redis_storage import RedisStorage
from adapters.sqlite_storage import SQLiteStorage
from core.errors import ConfigurationError
from core.models import BotConfig
from core.ports import StoragePort

LOGGER = logging.getLogger(__name__)

BACKENDS = ("sqlite", "redis", "memory")


def build_storage(
    backend: str,
    defaults: BotConfig,
    sqlite_path: Optional[str] = None,
    redis_url: Optional[str] = None,
    redis_prefix: str = "tgmod",
) -> StoragePort:
    backend = (backend or "").strip().lower()
    if backend == "sqlite":
        if not sqlite_path:
            raise ConfigurationError("storage.sqlite_path is required for the sqlite backend")
        LOGGER.info("Using SQLite storage at %s", sqlite_path)
        return SQLiteStorage(sqlite_path, defaults)
    if backend == "redis":
        if not redis_url:
            raise ConfigurationError("storage.redis_url is required for the redis backend")
        LOGGER.info("Using Redis storage with prefix %s", redis_prefix)
        return RedisStorage.from_url(redis_url, defaults=defaults, prefix=redis_prefix)
    if backend == "memory":
        LOGGER.warning("Using in-memory storage; state is lost on exit")
        return MemoryStorage(defaults)
    raise ConfigurationError(f"Unknown storage backend {backend!r}; expected one of {', '.join(BACKENDS)}")
