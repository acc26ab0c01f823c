"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage and transport adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from core.models import AdTemplate, BotConfig, ChatRef, ConfigPatch, Keyboard, PendingRequest, TrafficButton


class StoragePort(Protocol):
    """Persistence operations required by the moderator.

    Backend I/O errors propagate to the caller; adapters never retry.
    """

    def init(self) -> None:
        ...

    def get_config(self) -> BotConfig:
        ...

    def set_config(self, patch: ConfigPatch) -> None:
        ...

    def list_buttons(self) -> List[TrafficButton]:
        ...

    def set_buttons(self, buttons: List[TrafficButton]) -> None:
        ...

    def list_templates(self) -> List[AdTemplate]:
        ...

    def set_templates(self, templates: List[AdTemplate]) -> None:
        ...

    def list_allow(self) -> List[int]:
        ...

    def add_allow(self, user_id: int) -> None:
        ...

    def remove_allow(self, user_id: int) -> None:
        ...

    def list_block(self) -> List[int]:
        ...

    def add_block(self, user_id: int) -> None:
        ...

    def remove_block(self, user_id: int) -> None:
        ...

    def get_pending(self, request_id: str) -> Optional[PendingRequest]:
        ...

    def set_pending(self, request: PendingRequest) -> None:
        ...

    def del_pending(self, request_id: str) -> None:
        ...

    def list_pending(self) -> List[PendingRequest]:
        ...


@dataclass(frozen=True)
class CallResult:
    """Explicit outcome of one outbound call."""

    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "CallResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "CallResult":
        return cls(ok=False, error=error)


class TransportPort(Protocol):
    """Outbound messaging operations; failures come back as CallResult."""

    async def send_message(
        self,
        chat_id: ChatRef,
        text: str,
        buttons: Optional[Keyboard] = None,
        force_reply: bool = False,
    ) -> CallResult:
        ...

    async def forward_message(self, to_chat_id: ChatRef, from_chat_id: ChatRef, message_id: int) -> CallResult:
        ...

    async def edit_message(
        self,
        chat_id: ChatRef,
        message_id: int,
        text: str,
        buttons: Optional[Keyboard] = None,
    ) -> CallResult:
        ...

    async def answer_callback(self, query_id: int, text: Optional[str] = None, alert: bool = False) -> CallResult:
        ...
