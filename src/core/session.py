"""Moderator session: the single owner of per-process mutable state.

Handlers receive the session by reference. Every administrative mutation
writes through to the store first and refreshes the cached copy after, so a
failed write leaves the cache untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from core.config import AdmissionConfig, merge_config
from core.dedup import CooldownTracker, DedupCache
from core.errors import ConfigurationError
from core.metrics import Metrics
from core.models import MAX_BUTTONS, AdTemplate, BotConfig, ConfigPatch, TrafficButton
from core.ports import StoragePort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingPrompt:
    """An admin prompt awaiting a reply in the same thread."""

    kind: str
    message_id: int


class PromptRegistry:
    """Map admin ids to the one prompt each is expected to answer."""

    def __init__(self) -> None:
        self._prompts: dict[int, PendingPrompt] = {}

    def ask(self, admin_id: int, kind: str, message_id: int) -> None:
        self._prompts[admin_id] = PendingPrompt(kind=kind, message_id=message_id)

    def peek(self, admin_id: int) -> Optional[PendingPrompt]:
        return self._prompts.get(admin_id)

    def resolve(self, admin_id: int, reply_to_message_id: Optional[int]) -> Optional[PendingPrompt]:
        """Pop the prompt only when the reply threads onto it."""

        prompt = self._prompts.get(admin_id)
        if prompt is None or reply_to_message_id != prompt.message_id:
            return None
        del self._prompts[admin_id]
        return prompt

    def clear(self) -> None:
        self._prompts.clear()


class ModeratorSession:
    def __init__(
        self,
        store: StoragePort,
        limits: Optional[AdmissionConfig] = None,
        strict_default: bool = False,
    ) -> None:
        self.store = store
        self.limits = limits or AdmissionConfig()
        self._strict_default = strict_default
        self.config = BotConfig()
        self.buttons: List[TrafficButton] = []
        self.templates: List[AdTemplate] = []
        self.allowlist: set[int] = set()
        self.blocklist: set[int] = set()
        self.dedup = DedupCache(self.limits.dedup_window_ms, self.limits.dedup_retention_ms)
        self.cooldown = CooldownTracker(self.limits.cooldown_ms)
        self.metrics = Metrics()
        self.prompts = PromptRegistry()

    def load(self) -> None:
        """Read config and lists from the store; fails without a forward target."""

        self.store.init()
        self.config = self.store.get_config()
        self.buttons = self.store.list_buttons()
        self.templates = self.store.list_templates()
        self.allowlist = set(self.store.list_allow())
        self.blocklist = set(self.store.list_block())
        self.metrics.load(self.config.metrics)
        if not self.config.forward_target_id:
            raise ConfigurationError("Config is missing forward_target_id (FORWARD_TARGET_ID)")
        LOGGER.info(
            "Session loaded: %s buttons, %s templates, %s allowed, %s blocked, strict=%s",
            len(self.buttons),
            len(self.templates),
            len(self.allowlist),
            len(self.blocklist),
            self.strict_mode,
        )

    def close(self) -> None:
        """Flush metrics and drop every in-memory cache."""

        self.metrics.flush(self.store)
        self.dedup.clear()
        self.cooldown.clear()
        self.prompts.clear()

    @property
    def strict_mode(self) -> bool:
        if self.config.strict_template is None:
            return self._strict_default
        return self.config.strict_template

    def stats(self) -> dict:
        snapshot = self.metrics.snapshot()
        return {
            "sources": len(self.metrics.sources),
            "buttons": min(len(self.buttons), MAX_BUTTONS),
            "pending": snapshot["pending"],
            "approved": snapshot["approved"],
            "rejected": snapshot["rejected"],
            "allow": len(self.allowlist),
            "block": len(self.blocklist),
            "strict": self.strict_mode,
        }

    def is_admin(self, user_id: Optional[int]) -> bool:
        if not user_id:
            return False
        return user_id in self.config.admin_ids

    def update_config(self, patch: ConfigPatch) -> BotConfig:
        self.store.set_config(patch)
        self.config = merge_config(self.config, patch)
        return self.config

    def replace_buttons(self, buttons: List[TrafficButton]) -> None:
        self.store.set_buttons(list(buttons))
        self.buttons = self.store.list_buttons()

    def replace_templates(self, templates: List[AdTemplate]) -> None:
        self.store.set_templates(list(templates))
        self.templates = self.store.list_templates()

    def allow(self, user_id: int) -> None:
        self.store.add_allow(user_id)
        self.allowlist.add(user_id)

    def unallow(self, user_id: int) -> None:
        self.store.remove_allow(user_id)
        self.allowlist.discard(user_id)

    def block(self, user_id: int) -> None:
        self.store.add_block(user_id)
        self.blocklist.add(user_id)

    def unblock(self, user_id: int) -> None:
        self.store.remove_block(user_id)
        self.blocklist.discard(user_id)
