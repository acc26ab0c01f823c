"""Liveness and stats endpoints served over aiohttp."""

from __future__ import annotations

import logging
import time

from aiohttp import web

from core.session import ModeratorSession

LOGGER = logging.getLogger(__name__)


def build_health_app(session: ModeratorSession, started_at: float | None = None) -> web.Application:
    started = time.monotonic() if started_at is None else started_at
    app = web.Application()

    async def healthz(_: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def metrics(_: web.Request) -> web.Response:
        payload = dict(session.stats())
        payload["uptime_sec"] = int(time.monotonic() - started)
        return web.json_response(payload)

    app.router.add_get("/healthz", healthz)
    app.router.add_get("/metrics", metrics)
    return app


async def start_health_server(session: ModeratorSession, host: str, port: int) -> web.AppRunner:
    """Start the endpoints; the caller owns ``runner.cleanup()``."""

    runner = web.AppRunner(build_health_app(session))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    LOGGER.info("Health server listening on %s:%s", host, port)
    return runner
