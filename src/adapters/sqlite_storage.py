"""SQLite storage adapter.

Implements the core StoragePort using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from typing import List, Optional

from core.config import merge_config
from core.models import AdTemplate, BotConfig, ConfigPatch, PendingRequest, Suspected, TrafficButton, coerce_chat_id
from core.template_matcher import clamp_threshold

_CONFIG_KEY = "config"


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the StoragePort contract."""

    def __init__(self, db_path: str, defaults: Optional[BotConfig] = None) -> None:
        self._db_path = db_path
        self._defaults = defaults or BotConfig()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init(self) -> None:
        """Create tables if they do not exist and seed the config once.

        Tables:
        - config: single JSON document keyed by 'config'
        - buttons / templates: whole-collection catalogs
        - allowlist / blocklist: integer id sets
        - pending: review queue keyed by request id
        """

        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            # ord keeps the admin-chosen order; id only breaks ties.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS buttons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    text TEXT NOT NULL,
                    url TEXT NOT NULL,
                    ord INTEGER NOT NULL
                )
                """
            )
            # NULL threshold means "use the global default".
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    threshold REAL
                )
                """
            )
            conn.execute("CREATE TABLE IF NOT EXISTS allowlist (user_id INTEGER PRIMARY KEY)")
            conn.execute("CREATE TABLE IF NOT EXISTS blocklist (user_id INTEGER PRIMARY KEY)")
            # suspected is flattened into two nullable columns.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pending (
                    id TEXT PRIMARY KEY,
                    source_chat_id TEXT NOT NULL,
                    message_id INTEGER NOT NULL,
                    from_id INTEGER NOT NULL,
                    from_name TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    suspected_template TEXT,
                    suspected_score REAL
                )
                """
            )
            conn.execute(
                "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
                (_CONFIG_KEY, json.dumps(self._defaults.to_dict())),
            )

    def _write_config(self, config: BotConfig) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO config (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (_CONFIG_KEY, json.dumps(config.to_dict())),
            )

    def get_config(self) -> BotConfig:
        """Return the persisted config, seeding defaults when absent."""

        with self._connect() as conn:
            row = conn.execute("SELECT value FROM config WHERE key = ?", (_CONFIG_KEY,)).fetchone()
        if row and row["value"]:
            return BotConfig.from_dict(json.loads(row["value"]))
        self._write_config(self._defaults)
        return self._defaults

    def set_config(self, patch: ConfigPatch) -> None:
        """Merge the patch into the current document and overwrite it."""

        self._write_config(merge_config(self.get_config(), patch))

    def list_buttons(self) -> List[TrafficButton]:
        with self._connect() as conn:
            rows = conn.execute("SELECT text, url, ord FROM buttons ORDER BY ord ASC, id ASC").fetchall()
        return [TrafficButton(text=row["text"], url=row["url"], order=int(row["ord"])) for row in rows]

    def set_buttons(self, buttons: List[TrafficButton]) -> None:
        """Replace every button in one transaction."""

        with self._connect() as conn:
            conn.execute("DELETE FROM buttons")
            conn.executemany(
                "INSERT INTO buttons (text, url, ord) VALUES (?, ?, ?)",
                [(button.text, button.url, button.order) for button in buttons],
            )

    def list_templates(self) -> List[AdTemplate]:
        with self._connect() as conn:
            rows = conn.execute("SELECT name, content, threshold FROM templates ORDER BY id ASC").fetchall()
        return [
            AdTemplate(
                name=row["name"],
                content=row["content"],
                threshold=None if row["threshold"] is None else clamp_threshold(row["threshold"]),
            )
            for row in rows
        ]

    def set_templates(self, templates: List[AdTemplate]) -> None:
        """Replace every template in one transaction."""

        with self._connect() as conn:
            conn.execute("DELETE FROM templates")
            conn.executemany(
                "INSERT INTO templates (name, content, threshold) VALUES (?, ?, ?)",
                [
                    (
                        template.name,
                        template.content,
                        None if template.threshold is None else clamp_threshold(template.threshold),
                    )
                    for template in templates
                ],
            )

    def _list_ids(self, table: str) -> List[int]:
        with self._connect() as conn:
            rows = conn.execute(f"SELECT user_id FROM {table} ORDER BY user_id").fetchall()
        return [int(row["user_id"]) for row in rows]

    def _add_id(self, table: str, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute(f"INSERT OR IGNORE INTO {table} (user_id) VALUES (?)", (int(user_id),))

    def _remove_id(self, table: str, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (int(user_id),))

    def list_allow(self) -> List[int]:
        return self._list_ids("allowlist")

    def add_allow(self, user_id: int) -> None:
        self._add_id("allowlist", user_id)

    def remove_allow(self, user_id: int) -> None:
        self._remove_id("allowlist", user_id)

    def list_block(self) -> List[int]:
        return self._list_ids("blocklist")

    def add_block(self, user_id: int) -> None:
        self._add_id("blocklist", user_id)

    def remove_block(self, user_id: int) -> None:
        self._remove_id("blocklist", user_id)

    @staticmethod
    def _row_to_request(row: sqlite3.Row) -> PendingRequest:
        suspected = None
        if row["suspected_template"]:
            suspected = Suspected(template=row["suspected_template"], score=float(row["suspected_score"] or 0.0))
        return PendingRequest(
            id=row["id"],
            source_chat_id=coerce_chat_id(row["source_chat_id"]),
            message_id=int(row["message_id"]),
            from_id=int(row["from_id"]),
            from_name=row["from_name"],
            created_at=int(row["created_at"]),
            suspected=suspected,
        )

    def get_pending(self, request_id: str) -> Optional[PendingRequest]:
        """Return the pending request, or None for an unknown id."""

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM pending WHERE id = ?", (request_id,)).fetchone()
        return self._row_to_request(row) if row else None

    def set_pending(self, request: PendingRequest) -> None:
        """Upsert a pending request."""

        suspected = request.suspected
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO pending (
                    id,
                    source_chat_id,
                    message_id,
                    from_id,
                    from_name,
                    created_at,
                    suspected_template,
                    suspected_score
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.id,
                    str(request.source_chat_id),
                    request.message_id,
                    request.from_id,
                    request.from_name,
                    request.created_at,
                    suspected.template if suspected else None,
                    suspected.score if suspected else None,
                ),
            )

    def del_pending(self, request_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM pending WHERE id = ?", (request_id,))

    def list_pending(self) -> List[PendingRequest]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM pending ORDER BY created_at ASC").fetchall()
        return [self._row_to_request(row) for row in rows]
