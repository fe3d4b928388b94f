"""
ledger11 backup server - Main entry point.

This module runs the backup pipeline as its own process:
- DatabaseBackupService (queue + worker + storage provider)
- DatabaseWatcher (optional, notifies on file changes)

Usage:
    ledger11-backup [DATABASE ...] [--once] [--watch] [--watch-interval S]

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Invalid storage configuration aborts startup with exit status 1
    - Graceful shutdown lets the in-flight backup finish (bounded)
    - SIGTERM and SIGINT both trigger graceful shutdown

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Sequence

import json_log_formatter

from .config import ServiceConfig
from .errors import ConfigurationError
from .pipeline import DatabaseBackupService, create_backup_service
from .watch import DatabaseWatcher

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
        verbose: Force DEBUG level
    """
    level = logging.DEBUG if verbose else getattr(
        logging, config.observability.log_level.upper(), logging.INFO
    )

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class BackupServer:
    """Backup server orchestrator.

    Attributes:
        config: Service configuration
        databases: Databases to back up at startup (and to watch)
        watch: Whether to poll the databases for changes
        watch_interval: Seconds between watcher polls
        service: The backup service (initialized in start())
        watcher: The database watcher (initialized in start() if enabled)

    Example:
        >>> server = BackupServer(config, ["/data/appdata.db"], watch=True)
        >>> await server.start()
        >>> # Runs until request_shutdown()
        >>> await server.stop()
    """

    def __init__(
        self,
        config: ServiceConfig,
        databases: Sequence[str] = (),
        watch: bool = False,
        watch_interval: float = 5.0,
    ) -> None:
        self.config = config
        self.databases = list(databases)
        self.watch = watch
        self.watch_interval = watch_interval
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.service: DatabaseBackupService | None = None
        self.watcher: DatabaseWatcher | None = None
        self._tasks: list[asyncio.Task] = []

    async def start(self, wait: bool = True) -> None:
        """Start the server and all components.

        Args:
            wait: Block until request_shutdown() is called
        """
        if self._running:
            logger.warning("Backup server already running")
            return

        logger.info("Starting backup server")
        self.config.log_config()

        try:
            self.service = create_backup_service(self.config)
            await self.service.start()

            for path in self.databases:
                self.service.notify(path)

            if self.watch and self.databases:
                self.watcher = DatabaseWatcher(
                    self.databases,
                    self.service.notify,
                    interval=self.watch_interval,
                )
                self.watcher.poll()
                self._tasks.append(asyncio.create_task(self.watcher.start()))

            self._running = True
            logger.info("Backup server started")

            if wait:
                await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Backup server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def run_once(self) -> bool:
        """Back up every configured database once, then stop.

        Returns:
            True if every backup was stored
        """
        await self.start(wait=False)
        service = self.service
        if service is None:
            raise RuntimeError("Backup service was not created by start()")

        await service.wait_idle()
        stats = service.stats
        await self.stop()
        return stats["failed_count"] == 0 and stats["processed_count"] == len(self.databases)

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Stopping backup server")

        if self.watcher:
            await self.watcher.stop()

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

        if self.service:
            await self.service.stop()

        self._running = False
        logger.info("Backup server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger11-backup",
        description="Back up ledger11 SQLite databases to the configured storage target",
    )
    parser.add_argument("databases", nargs="*", help="Database files to back up")
    parser.add_argument(
        "--once", action="store_true", help="Back up the databases once and exit"
    )
    parser.add_argument(
        "--watch", action="store_true", help="Back up the databases whenever they change"
    )
    parser.add_argument(
        "--watch-interval", type=float, default=5.0, help="Seconds between change checks"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = ServiceConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config, verbose=args.verbose)

    server = BackupServer(
        config,
        databases=args.databases,
        watch=args.watch,
        watch_interval=args.watch_interval,
    )

    if args.once:
        ok = asyncio.run(server.run_once())
        sys.exit(0 if ok else 1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
