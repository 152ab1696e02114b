"""
HTTP boundary for the race demo (aiohttp).

    POST /api/demo/send      {lane}                -> {txHash, from}
    POST /api/demo/confirm   {lane, txHash}        -> {confirmed, method, blockNumber}
    GET  /api/demo/wallet                          -> wallet snapshot
    POST /api/demo/start     {durationSeconds}     -> NDJSON stream of race events
    POST /api/demo/stop                            -> {stopped: true, token}
    GET  /metrics, GET /health

Input is validated here (HTTP 400) before anything reaches the core.
"""

import asyncio
import json
import re
from typing import Any, Dict, Optional, Tuple

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .config import MAX_DURATION_SECONDS, MIN_DURATION_SECONDS, Settings
from .core.errors import error_message
from .core.sender import Lane, TransactionProvider
from .race.context import parse_duration_seconds
from .race.controller import RunController
from .race.events import EndReason, RaceEvent
from .utils.logger import get_logger

logger = get_logger(__name__)

PROVIDER_KEY = web.AppKey("provider", TransactionProvider)
CONTROLLER_KEY = web.AppKey("controller", RunController)

TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

LANE_ERROR = 'lane must be "flashblocks" or "normal"'
TX_HASH_ERROR = "txHash must be a 32-byte hex string"
DURATION_ERROR = (
    f"durationSeconds must be a number between {MIN_DURATION_SECONDS} and {MAX_DURATION_SECONDS}"
)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_body(request: web.Request) -> Tuple[Optional[Dict[str, Any]], Optional[web.Response]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, _error("Invalid JSON body", 400)
    return (body if isinstance(body, dict) else {}), None


# ========== Handlers ==========

async def send_handler(request: web.Request) -> web.Response:
    body, error = await _read_body(request)
    if error is not None:
        return error
    lane = Lane.parse(body.get("lane"))
    if lane is None:
        return _error(LANE_ERROR, 400)

    try:
        handle = await request.app[PROVIDER_KEY].send(lane)
    except Exception as e:
        logger.error(f"[HTTP] Failed to send {lane.value} lane transaction: {e}")
        return _error(error_message(e), 500)
    return web.json_response(handle.to_dict())


async def confirm_handler(request: web.Request) -> web.Response:
    body, error = await _read_body(request)
    if error is not None:
        return error
    lane = Lane.parse(body.get("lane"))
    if lane is None:
        return _error(LANE_ERROR, 400)
    tx_hash = body.get("txHash")
    if not isinstance(tx_hash, str) or not TX_HASH_RE.match(tx_hash):
        return _error(TX_HASH_ERROR, 400)

    try:
        result = await request.app[PROVIDER_KEY].confirm(lane, tx_hash)
    except Exception as e:
        logger.error(f"[HTTP] Failed to check {lane.value} confirmation for {tx_hash}: {e}")
        return _error(error_message(e), 500)
    return web.json_response(result.to_dict())


async def wallet_handler(request: web.Request) -> web.Response:
    try:
        snapshot = await request.app[PROVIDER_KEY].wallet_snapshot()
    except Exception as e:
        logger.error(f"[HTTP] Failed to fetch demo wallet snapshot: {e}")
        return _error(error_message(e), 500)
    return web.json_response(snapshot)


async def start_handler(request: web.Request) -> web.StreamResponse:
    """Start a run and stream its events until the end event."""
    body, error = await _read_body(request)
    if error is not None:
        return error
    duration = parse_duration_seconds(body.get("durationSeconds"))
    if duration is None:
        return _error(DURATION_ERROR, 400)

    controller = request.app[CONTROLLER_KEY]
    queue: "asyncio.Queue[RaceEvent]" = asyncio.Queue()
    controller.add_listener(queue.put_nowait)

    response = web.StreamResponse(headers={
        "Content-Type": "application/x-ndjson",
        "Cache-Control": "no-cache",
    })
    ctx = None
    try:
        await response.prepare(request)
        ctx = controller.start(duration)
        while True:
            event = await queue.get()
            if event.token != ctx.token:
                continue
            await response.write(event.to_json_line().encode())
            if event.is_end:
                break
        await response.write_eof()
    except (ConnectionResetError, asyncio.CancelledError):
        if ctx is not None and controller.token == ctx.token:
            logger.info(f"[HTTP] Client went away, aborting {ctx.run_id}")
            controller.stop(EndReason.ABORTED)
        raise
    finally:
        controller.remove_listener(queue.put_nowait)
    return response


async def stop_handler(request: web.Request) -> web.Response:
    controller = request.app[CONTROLLER_KEY]
    controller.stop(EndReason.MANUAL)
    return web.json_response({"stopped": True, "token": controller.token})


async def metrics_handler(request: web.Request) -> web.Response:
    """Handler for /metrics endpoint"""
    return web.Response(
        body=generate_latest(REGISTRY),
        headers={"Content-Type": CONTENT_TYPE_LATEST},
    )


async def health_handler(request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def _on_cleanup(app: web.Application) -> None:
    await app[CONTROLLER_KEY].close()
    await app[PROVIDER_KEY].close()


def create_app(provider: TransactionProvider, settings: Optional[Settings] = None) -> web.Application:
    settings = settings or Settings()
    app = web.Application()
    app[PROVIDER_KEY] = provider
    app[CONTROLLER_KEY] = RunController(
        provider,
        poll_interval=settings.confirm_poll_ms / 1000,
        retry_delay=settings.send_retry_ms / 1000,
    )

    app.router.add_post("/api/demo/send", send_handler)
    app.router.add_post("/api/demo/confirm", confirm_handler)
    app.router.add_get("/api/demo/wallet", wallet_handler)
    app.router.add_post("/api/demo/start", start_handler)
    app.router.add_post("/api/demo/stop", stop_handler)
    app.router.add_get("/metrics", metrics_handler)
    app.router.add_get("/health", health_handler)
    app.on_cleanup.append(_on_cleanup)
    return app


class DemoServer:
    """Runs the demo app on host:port until stop()."""

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000):
        self.app = app
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"Demo server started on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("Demo server stopped")


async def serve(provider: TransactionProvider, settings: Settings) -> None:
    """Serve until cancelled."""
    server = DemoServer(create_app(provider, settings), settings.server_host, settings.server_port)
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
