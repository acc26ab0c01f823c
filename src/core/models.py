"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Optional, Union

DEFAULT_WELCOME_TEXT = "Welcome! Send your post here and an admin will review it."
DEFAULT_THRESHOLD = 0.6

# Render-time cap only; storage keeps every button.
MAX_BUTTONS = 6


@dataclass(frozen=True)
class BotConfig:
    """Process-wide settings persisted as a single document."""

    forward_target_id: str = ""
    review_target_id: str = ""
    welcome_text: str = DEFAULT_WELCOME_TEXT
    attach_buttons: bool = True
    admin_ids: list[int] = field(default_factory=list)
    allowlist_mode: bool = False
    default_threshold: float = DEFAULT_THRESHOLD
    strict_template: Optional[bool] = None
    sources_allow: list[str] = field(default_factory=list)
    metrics: Optional[dict[str, int]] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BotConfig":
        """Build a config from a stored document, ignoring unknown keys."""

        known = {f.name for f in fields(cls)}
        data = {key: value for key, value in raw.items() if key in known}
        if "admin_ids" in data:
            data["admin_ids"] = [int(value) for value in data["admin_ids"] or []]
        if "sources_allow" in data:
            data["sources_allow"] = [str(value) for value in data["sources_allow"] or []]
        return cls(**data)


@dataclass(frozen=True)
class ConfigPatch:
    """Typed partial update for BotConfig; None leaves a field unchanged."""

    forward_target_id: Optional[str] = None
    review_target_id: Optional[str] = None
    welcome_text: Optional[str] = None
    attach_buttons: Optional[bool] = None
    admin_ids: Optional[list[int]] = None
    allowlist_mode: Optional[bool] = None
    default_threshold: Optional[float] = None
    strict_template: Optional[bool] = None
    sources_allow: Optional[list[str]] = None
    metrics: Optional[dict[str, int]] = None

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class TrafficButton:
    text: str
    url: str
    order: int


@dataclass(frozen=True)
class AdTemplate:
    """Reference advertisement text; each content line is a matching unit."""

    name: str
    content: str
    threshold: Optional[float] = None


@dataclass(frozen=True)
class Suspected:
    template: str
    score: float


@dataclass(frozen=True)
class PendingRequest:
    """A post waiting for an operator decision."""

    id: str
    source_chat_id: Union[int, str]
    message_id: int
    from_id: int
    from_name: str
    created_at: int
    suspected: Optional[Suspected] = None

    @staticmethod
    def make_id(created_at: int, source_chat_id: Union[int, str], message_id: int) -> str:
        return f"{created_at}_{source_chat_id}_{message_id}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PendingRequest":
        suspected = raw.get("suspected")
        return cls(
            id=str(raw["id"]),
            source_chat_id=coerce_chat_id(raw["source_chat_id"]),
            message_id=int(raw["message_id"]),
            from_id=int(raw.get("from_id") or 0),
            from_name=str(raw.get("from_name") or ""),
            created_at=int(raw["created_at"]),
            suspected=Suspected(suspected["template"], float(suspected["score"])) if suspected else None,
        )


@dataclass(frozen=True)
class InboundPost:
    """Minimal inbound message used by the admission pipeline."""

    chat_id: int
    chat_username: Optional[str]
    chat_type: str
    message_id: int
    from_id: Optional[int]
    from_name: str
    date: datetime
    text: str
    reply_to_message_id: Optional[int] = None

    @property
    def is_private(self) -> bool:
        return self.chat_type == "private"


@dataclass(frozen=True)
class InboundCallback:
    """A button press carrying an opaque action token."""

    query_id: int
    from_id: int
    chat_id: int
    message_id: int
    data: str


@dataclass(frozen=True)
class InlineButton:
    """Presentation-neutral keyboard cell: either a link or an action token."""

    text: str
    url: Optional[str] = None
    data: Optional[str] = None


Keyboard = list[list[InlineButton]]

# Chat references are numeric ids or public @usernames.
ChatRef = Union[int, str]


def coerce_chat_id(value: Union[int, str]) -> Union[int, str]:
    """Return numeric chat ids as int, keeping @usernames as strings."""

    try:
        return int(value)
    except (TypeError, ValueError):
        return str(value)
