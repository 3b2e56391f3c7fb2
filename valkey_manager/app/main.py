"""Entry point for the valkey manager sidecar.

Usage examples:
  - valkey-manager --namespace cache --index 2
  - NAMESPACE=cache INDEX=2 LABEL_SELECTOR=app=valkey valkey-manager

Flags override the matching environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

import structlog

from valkey_manager.cluster.errors import SettingsError
from valkey_manager.config.settings import Settings, load_settings
from valkey_manager.manager.manager import Manager
from valkey_manager.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Configure the valkey cluster of a StatefulSet member")
    parser.add_argument(
        "--namespace",
        help="kubernetes namespace in which the manager and managed valkey run (env: NAMESPACE)",
    )
    parser.add_argument(
        "--index",
        type=int,
        help="index number of this StatefulSet member (env: INDEX)",
    )
    parser.add_argument(
        "--label",
        dest="label_selector",
        help="the label selector by which we may find our StatefulSet (env: LABEL_SELECTOR)",
    )
    parser.add_argument(
        "--listen-addr",
        help="host:port on which the health service listens (env: LISTEN_ADDR, default :8087)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="enable debug logging (env: DEBUG)",
    )
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    return load_settings(
        NAMESPACE=args.namespace,
        INDEX=args.index,
        LABEL_SELECTOR=args.label_selector,
        LISTEN_ADDR=args.listen_addr,
        DEBUG=args.debug,
    )


async def run_until_signalled(manager: Manager) -> None:
    """Run ``manager`` until it stops or SIGINT/SIGTERM cancels it."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, task.cancel)
    try:
        await manager.run()
    except asyncio.CancelledError:
        logger.info("shutdown_signal_received")
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = settings_from_args(args)
    except SettingsError as e:
        print(f"valkey-manager: {e}", file=sys.stderr)
        return 2

    log = setup_logging(level=settings.log_level, member_index=settings.INDEX, component="manager")

    try:
        asyncio.run(run_until_signalled(Manager(settings)))
    except KeyboardInterrupt:
        pass

    log.info("valkey_manager_exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
