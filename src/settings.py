"""Static configuration for the moderation gateway.

Operational settings (storage, admission limits, outbound pacing, logging)
live in a single JSON file for quick edits without touching Python. Secrets
and the first-run Config seed come from the environment.
"""

import json
import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from core.config import AdmissionConfig, ReviewConfig
from core.errors import ConfigurationError
from core.models import DEFAULT_THRESHOLD, DEFAULT_WELCOME_TEXT, BotConfig
from core.template_matcher import STRATEGIES, STRATEGY_NGRAM, clamp_threshold

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

load_dotenv()


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def _env_flag(value: Optional[str]) -> Optional[bool]:
    """Parse a true/false env value; None when unset or unrecognized."""

    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return None


def _env_ids(value: Optional[str]) -> list[int]:
    ids = []
    for part in (value or "").split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            ids.append(int(part))
    return ids


def build_default_config(environ: Optional[Mapping[str, str]] = None) -> BotConfig:
    """Derive the first-run Config from environment variables."""

    env = os.environ if environ is None else environ
    attach = _env_flag(env.get("ATTACH_BUTTONS"))
    allowlist_mode = _env_flag(env.get("ALLOWLIST_MODE"))
    return BotConfig(
        forward_target_id=(env.get("FORWARD_TARGET_ID") or "").strip(),
        review_target_id=(env.get("REVIEW_TARGET_ID") or "").strip(),
        welcome_text=env.get("WELCOME_TEXT") or DEFAULT_WELCOME_TEXT,
        attach_buttons=True if attach is None else attach,
        admin_ids=_env_ids(env.get("ADMIN_IDS")),
        allowlist_mode=bool(allowlist_mode),
        default_threshold=clamp_threshold(env.get("DEFAULT_THRESHOLD", DEFAULT_THRESHOLD)),
        strict_template=_env_flag(env.get("STRICT_TEMPLATE")),
    )


def strict_default(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Strict mode used while the persisted Config leaves it unset."""

    env = os.environ if environ is None else environ
    return bool(_env_flag(env.get("STRICT_TEMPLATE")))


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Storage backend selection; PERSIST_BACKEND wins over config.json.
_storage = _CONFIG.get("storage", {})
STORAGE_BACKEND = os.getenv("PERSIST_BACKEND") or _storage.get("backend", "sqlite")
SQLITE_PATH = _resolve_path(_storage.get("sqlite_path", "data/moderator.db"))
REDIS_URL = os.getenv("REDIS_URL") or _storage.get("redis_url", "redis://localhost:6379/0")
REDIS_PREFIX = _storage.get("redis_prefix", "tgmod")

# Admission limits applied before any template matching.
# - MAX_AGE_SEC: older posts are dropped silently
# - DEDUP_WINDOW_MS: repeated (chat, message) deliveries inside it are dropped
# - COOLDOWN_MS: minimum spacing between admitted posts per user
_admission = _CONFIG.get("admission", {})
_matching = _CONFIG.get("matching", {})
MATCH_STRATEGY = _matching.get("strategy", STRATEGY_NGRAM)
if MATCH_STRATEGY not in STRATEGIES:
    raise ConfigurationError(f"matching.strategy must be one of {', '.join(STRATEGIES)}")
ADMISSION = AdmissionConfig(
    max_age_sec=int(_admission.get("max_age_sec", 86400)),
    dedup_window_ms=int(_admission.get("dedup_window_ms", 1000)),
    dedup_retention_ms=int(_admission.get("dedup_retention_ms", 60_000)),
    cooldown_ms=int(_admission.get("cooldown_ms", 3000)),
    match_strategy=MATCH_STRATEGY,
)

# Outbound pacing and forward retry.
_outbound = _CONFIG.get("outbound", {})
MIN_INTERVAL_MS = int(_outbound.get("min_interval_ms", 60))

# Pending requests older than TTL are expired; 0 disables expiry.
_pending = _CONFIG.get("pending", {})
REVIEW = ReviewConfig(
    forward_attempts=int(_outbound.get("forward_attempts", 3)),
    forward_backoff_sec=float(_outbound.get("forward_backoff_sec", 1.0)),
    pending_ttl_sec=int(_pending.get("ttl_sec", 7 * 86400)),
)
REAP_INTERVAL_SEC = int(_pending.get("reap_interval_sec", 600))

_metrics = _CONFIG.get("metrics", {})
METRICS_FLUSH_INTERVAL_SEC = int(_metrics.get("flush_interval_sec", 60))

_health = _CONFIG.get("health", {})
HEALTH_ENABLED = bool(_health.get("enabled", False))
HEALTH_HOST = _health.get("host", "127.0.0.1")
HEALTH_PORT = int(_health.get("port", 8080))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
