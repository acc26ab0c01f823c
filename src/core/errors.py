"""Error types shared by the core and adapters."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing or invalid."""


class ValidationError(ValueError):
    """Raised when an administrative input is rejected.

    The message is operator-facing and is sent back verbatim.
    """
