"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from core.models import BotConfig, ConfigPatch
from core.template_matcher import clamp_threshold


@dataclass(frozen=True)
class AdmissionConfig:
    """Limits applied by the admission pipeline."""

    max_age_sec: int = 86400
    dedup_window_ms: int = 1000
    dedup_retention_ms: int = 60_000
    cooldown_ms: int = 3000
    match_strategy: str = "ngram"


@dataclass(frozen=True)
class ReviewConfig:
    """Forward retry and pending expiry settings."""

    forward_attempts: int = 3
    forward_backoff_sec: float = 1.0
    pending_ttl_sec: int = 7 * 86400


def merge_config(current: BotConfig, patch: ConfigPatch) -> BotConfig:
    """Return the config with every non-None field of the patch applied."""

    changes = patch.changes()
    # Copy container fields so the merged config never aliases caller state.
    for name in ("admin_ids", "sources_allow"):
        if name in changes:
            changes[name] = list(changes[name])
    if "metrics" in changes:
        changes["metrics"] = dict(changes["metrics"])
    merged = replace(current, **changes)
    return replace(merged, default_threshold=clamp_threshold(merged.default_threshold))
