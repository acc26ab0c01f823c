"""Application entry point for the moderation gateway."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import asdict
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.health_server import start_health_server
from adapters.outbound_limiter import OutboundLimiter
from adapters.storage_factory import build_storage
from adapters.telegram_mapper import build_callback, build_post
from adapters.telegram_transport import TelethonTransport
from client import build_client, read_bot_token
from core.admin import AdminConsole
from core.admission import AdmissionPipeline
from core.ledger import PendingLedger
from core.processor import MessageProcessor
from core.review import RetryPolicy, ReviewService
from core.session import ModeratorSession
from core.template_matcher import STRATEGY_NGRAM

NAME = "GATEKEEPER"
FONT = "tarty-1"

# Env vars masked in every log line unless config.json lists its own.
DEFAULT_REDACT_PATTERNS = ["BOT_TOKEN", "API_HASH"]


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", DEFAULT_REDACT_PATTERNS):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/moderator.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO; keep its reconnect noise out of our logs.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _build_storage():
    if settings.STORAGE_BACKEND == "sqlite":
        directory = os.path.dirname(settings.SQLITE_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)
    return build_storage(
        settings.STORAGE_BACKEND,
        settings.build_default_config(),
        sqlite_path=settings.SQLITE_PATH,
        redis_url=settings.REDIS_URL,
        redis_prefix=settings.REDIS_PREFIX,
    )


async def _every(interval_sec: int, label: str, job: Callable[[], object]) -> None:
    """Run a synchronous maintenance job forever at a fixed interval."""

    logger = logging.getLogger(__name__)
    while True:
        await asyncio.sleep(interval_sec)
        try:
            job()
        except Exception:
            logger.exception("Background job %s failed", label)


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting moderation gateway")

    storage = _build_storage()
    session = ModeratorSession(
        storage,
        limits=settings.ADMISSION,
        strict_default=settings.strict_default(),
    )
    session.load()
    if settings.ADMISSION.match_strategy != STRATEGY_NGRAM:
        logger.info("Template matching uses the %s strategy", settings.ADMISSION.match_strategy)

    client = build_client()
    limiter = OutboundLimiter(settings.MIN_INTERVAL_MS)
    transport = TelethonTransport(client, limiter)
    ledger = PendingLedger(storage, session.metrics, ttl_sec=settings.REVIEW.pending_ttl_sec)
    review = ReviewService(
        session,
        ledger,
        transport,
        retry=RetryPolicy(
            attempts=settings.REVIEW.forward_attempts,
            backoff_sec=settings.REVIEW.forward_backoff_sec,
        ),
    )
    processor = MessageProcessor(
        session,
        transport,
        AdmissionPipeline(session),
        ledger,
        review,
        console=AdminConsole(session, transport),
    )

    # Single handler keeps Telethon integration minimal and defers all
    # filtering to the core processor for consistency and testability.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            post = await build_post(event.message)
            await processor.handle(post)
        except Exception:
            logger.exception("Error while processing message")

    @client.on(events.CallbackQuery())
    async def callback_handler(event) -> None:
        try:
            await processor.handle_callback(build_callback(event))
        except Exception:
            logger.exception("Error while processing callback")

    # Explicit lifecycle management makes start/shutdown behavior obvious.
    client.start(bot_token=read_bot_token())

    runner = None
    if settings.HEALTH_ENABLED:
        runner = client.loop.run_until_complete(
            start_health_server(session, settings.HEALTH_HOST, settings.HEALTH_PORT)
        )

    tasks = [
        client.loop.create_task(_every(settings.REAP_INTERVAL_SEC, "maintenance", processor.maintenance)),
        client.loop.create_task(
            _every(settings.METRICS_FLUSH_INTERVAL_SEC, "metrics flush", lambda: session.metrics.flush(storage))
        ),
    ]

    logger.info("Bot connected. Listening for posts and review decisions...")
    try:
        client.run_until_disconnected()
    finally:
        for task in tasks:
            task.cancel()
        if runner is not None:
            client.loop.run_until_complete(runner.cleanup())
        session.close()
        logger.info("Moderation gateway stopped")


def _show_config() -> None:
    storage = _build_storage()
    storage.init()
    config = storage.get_config()
    payload = {
        "config": config.to_dict(),
        "buttons": [asdict(button) for button in storage.list_buttons()],
        "templates": [asdict(template) for template in storage.list_templates()],
        "allow": storage.list_allow(),
        "block": storage.list_block(),
        "pending": len(storage.list_pending()),
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="tg-moderator")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the moderation bot")
    subparsers.add_parser("show-config", help="Print the persisted config as JSON")

    args = parser.parse_args(argv)
    if args.command == "show-config":
        _show_config()
        return
    _run()


if __name__ == "__main__":
    main()
