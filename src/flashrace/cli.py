"""
Command line entry.

    flashrace serve                 # HTTP demo server
    flashrace race --duration 10    # one race, NDJSON events on stdout
"""

import argparse
import sys
from typing import List, Optional

import uvloop

from .config import MAX_DURATION_SECONDS, MIN_DURATION_SECONDS, Settings, load_settings
from .core.errors import ConfigError
from .core.providers import build_provider
from .race.context import parse_duration_seconds
from .race.controller import RunController
from .race.events import EndReason, RaceEvent
from .server import serve
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _print_event(event: RaceEvent) -> None:
    sys.stdout.write(event.to_json_line())
    sys.stdout.flush()


async def run_race(settings: Settings, duration: float) -> Optional[EndReason]:
    provider = build_provider(settings)
    controller = RunController(
        provider,
        poll_interval=settings.confirm_poll_ms / 1000,
        retry_delay=settings.send_retry_ms / 1000,
    )
    controller.add_listener(_print_event)
    try:
        controller.start(duration)
        return await controller.wait()
    finally:
        await controller.close()
        await provider.close()


async def run_server(settings: Settings) -> None:
    provider = build_provider(settings)
    try:
        await serve(provider, settings)
    finally:
        await provider.close()


def _duration(value: str) -> float:
    try:
        duration = parse_duration_seconds(float(value))
    except ValueError:
        duration = None
    if duration is None:
        raise argparse.ArgumentTypeError(
            f"must be a number between {MIN_DURATION_SECONDS} and {MAX_DURATION_SECONDS}"
        )
    return duration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flashrace", description="Flashblocks vs normal confirmation race")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the HTTP demo server")

    race = sub.add_parser("race", help="Run one race and print NDJSON events")
    race.add_argument("--duration", type=_duration, default=10.0, help="Run length in seconds (1-60)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, log_dir=settings.log_dir)
    logger.info(f"Settings: {settings.to_public_dict()}")

    try:
        if args.command == "serve":
            uvloop.run(run_server(settings))
            return 0
        reason = uvloop.run(run_race(settings, args.duration))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0 if reason in (EndReason.TIMEOUT, EndReason.MANUAL) else 1
