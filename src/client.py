"""Telegram client factory for the moderation gateway.

We explicitly manage the client's lifecycle (start/run_until_disconnected)
so it is obvious when the bot session is created and when it ends.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient

from core.errors import ConfigurationError


def read_bot_token() -> str:
    load_dotenv()
    token = os.getenv("BOT_TOKEN")
    if not token:
        raise ConfigurationError("Missing BOT_TOKEN in environment")
    return token


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH come from the environment via python-dotenv. The session
    name defaults to "moderator" and creates a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "moderator")

    # Fail fast on missing credentials instead of an ambiguous login prompt.
    if not api_id or not api_hash:
        raise ConfigurationError("Missing API_ID or API_HASH in environment")
    if not api_id.strip().isdigit():
        raise ConfigurationError("API_ID must be numeric")

    logging.getLogger(__name__).info("Initializing Telegram bot client")

    return TelegramClient(session_name, int(api_id), api_hash)
