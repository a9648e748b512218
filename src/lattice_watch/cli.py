"""Command line entry point that prints payment events as they are confirmed.

Usage:
    lattice-watch --account nano_1abc...                 # watch one account
    lattice-watch --account A --account B --verbose      # several accounts, debug logging
    LATTICE_WATCH_ACCOUNTS=A,B lattice-watch             # accounts from the environment
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from .config import ConfigurationError, load_monitor_settings
from .exceptions import MonitorConnectionError, ReconnectExhaustedError
from .logging_config import setup_logging
from .messages import PaymentEvent, ReceivedEvent
from .monitor import ConfirmationMonitor

logger = logging.getLogger(__name__)

EXIT_CONNECT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lattice-watch",
        description="Print confirmed payments to Nano accounts from a node websocket feed.",
    )
    parser.add_argument("--ws-url", help="Websocket endpoint (overrides LATTICE_WATCH_WS_URL)")
    parser.add_argument(
        "--account",
        action="append",
        dest="accounts",
        metavar="ADDRESS",
        help="Account to watch; repeat for several (overrides LATTICE_WATCH_ACCOUNTS)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def format_payment(event: PaymentEvent) -> str:
    return f"{event.timestamp.isoformat()} PAYMENT {event.amount_display} XNO {event.from_account} -> {event.to_account} ({event.hash})"


def format_received(event: ReceivedEvent) -> str:
    return f"{event.timestamp.isoformat()} RECEIVED {event.amount_display} XNO by {event.account} ({event.hash})"


async def run_monitor(monitor: ConfirmationMonitor) -> int:
    monitor.on_payment(lambda event: print(format_payment(event), flush=True))
    monitor.on_received(lambda event: print(format_received(event), flush=True))
    gave_up = []

    def report_error(exc: Exception) -> None:
        if isinstance(exc, ReconnectExhaustedError):
            gave_up.append(exc)
        logger.warning("Monitor error: %s", exc)

    monitor.on_error(report_error)

    try:
        await monitor.start()
    except MonitorConnectionError as exc:
        logger.error("Could not connect to %s: %s", monitor.settings.ws_url, exc)
        monitor.stop()
        await monitor.wait_closed()
        return EXIT_CONNECT_FAILED

    try:
        await monitor.wait_closed()
    finally:
        monitor.stop()
        await monitor.wait_closed()
    return EXIT_CONNECT_FAILED if gave_up else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = load_monitor_settings().with_overrides(ws_url=args.ws_url, accounts=args.accounts)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_USAGE

    if not settings.accounts:
        logger.error("No accounts to watch; pass --account or set LATTICE_WATCH_ACCOUNTS")
        return EXIT_USAGE

    try:
        return asyncio.run(run_monitor(ConfirmationMonitor(settings)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
