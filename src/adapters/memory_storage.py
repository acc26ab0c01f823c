"""In-memory storage adapter for tests and dry runs."""

from __future__ import annotations

from typing import Dict, List, Optional

from core.config import merge_config
from core.models import AdTemplate, BotConfig, ConfigPatch, PendingRequest, TrafficButton
from core.template_matcher import clamp_threshold


class MemoryStorage:
    def __init__(self, defaults: Optional[BotConfig] = None) -> None:
        self._defaults = defaults or BotConfig()
        self._config: Optional[BotConfig] = None
        self._buttons: List[TrafficButton] = []
        self._templates: List[AdTemplate] = []
        self._allow: set[int] = set()
        self._block: set[int] = set()
        self._pending: Dict[str, PendingRequest] = {}

    def init(self) -> None:
        if self._config is None:
            self._config = self._defaults

    def get_config(self) -> BotConfig:
        if self._config is None:
            self._config = self._defaults
        return self._config

    def set_config(self, patch: ConfigPatch) -> None:
        self._config = merge_config(self.get_config(), patch)

    def list_buttons(self) -> List[TrafficButton]:
        return sorted(self._buttons, key=lambda button: button.order)

    def set_buttons(self, buttons: List[TrafficButton]) -> None:
        self._buttons = list(buttons)

    def list_templates(self) -> List[AdTemplate]:
        return list(self._templates)

    def set_templates(self, templates: List[AdTemplate]) -> None:
        self._templates = [
            AdTemplate(
                name=template.name,
                content=template.content,
                threshold=None if template.threshold is None else clamp_threshold(template.threshold),
            )
            for template in templates
        ]

    def list_allow(self) -> List[int]:
        return sorted(self._allow)

    def add_allow(self, user_id: int) -> None:
        self._allow.add(int(user_id))

    def remove_allow(self, user_id: int) -> None:
        self._allow.discard(int(user_id))

    def list_block(self) -> List[int]:
        return sorted(self._block)

    def add_block(self, user_id: int) -> None:
        self._block.add(int(user_id))

    def remove_block(self, user_id: int) -> None:
        self._block.discard(int(user_id))

    def get_pending(self, request_id: str) -> Optional[PendingRequest]:
        return self._pending.get(request_id)

    def set_pending(self, request: PendingRequest) -> None:
        self._pending[request.id] = request

    def del_pending(self, request_id: str) -> None:
        self._pending.pop(request_id, None)

    def list_pending(self) -> List[PendingRequest]:
        return sorted(self._pending.values(), key=lambda request: request.created_at)
