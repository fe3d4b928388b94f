"""
Integration tests for the backup server entry point.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from ledger11.backup_server.config import (
    ObservabilityConfig,
    PipelineConfig,
    RemoteStorageConfig,
    ServiceConfig,
    StorageType,
)
from ledger11.backup_server.main import BackupServer, build_parser, main, setup_logging
from tests.utils import count_rows, create_database


@pytest.fixture
def restore_logging():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def file_config(work_dir, snapshot_dir):
    return ServiceConfig(
        storage=RemoteStorageConfig(
            storage_type=StorageType.FILE, remote_path=str(work_dir / "backups")
        ),
        pipeline=PipelineConfig(poll_interval_seconds=0.05, temp_dir=str(snapshot_dir)),
    )


class TestBackupServer:
    """Tests for the BackupServer orchestrator."""

    @pytest.mark.asyncio
    async def test_run_once(self, file_config, work_dir):
        db = create_database(work_dir / "appdata.db", rows=2)
        server = BackupServer(file_config, databases=[str(db)])

        assert await server.run_once()

        backups = list((work_dir / "backups").iterdir())
        assert len(backups) == 1
        assert count_rows(backups[0]) == 2

    @pytest.mark.asyncio
    async def test_run_once_reports_failures(self, file_config, work_dir):
        server = BackupServer(file_config, databases=[str(work_dir / "missing.db")])

        assert not await server.run_once()

    @pytest.mark.asyncio
    async def test_run_once_without_service(self, file_config, monkeypatch):
        """run_once() refuses to report success when start() built no service."""
        server = BackupServer(file_config, databases=[])
        monkeypatch.setattr(server, "start", AsyncMock())

        with pytest.raises(RuntimeError, match="not created"):
            await server.run_once()

    @pytest.mark.asyncio
    async def test_watch_mode_backs_up_changes(self, file_config, work_dir):
        db = create_database(work_dir / "appdata.db", rows=1)
        server = BackupServer(file_config, databases=[str(db)], watch=True, watch_interval=0.05)

        start_task = asyncio.create_task(server.start())
        try:
            while server.service is None or not server.service.stats["processed_count"]:
                await asyncio.sleep(0.02)

            create_database(db, rows=5)
            while server.service.stats["processed_count"] < 2:
                await asyncio.sleep(0.02)
        finally:
            server.request_shutdown()
            await asyncio.wait_for(start_task, timeout=5)
            await server.stop()

        assert server.service.stats["failed_count"] == 0


class TestMain:
    """Tests for the command line entry point."""

    def test_parser(self):
        args = build_parser().parse_args(["a.db", "b.db", "--once", "-v"])

        assert args.databases == ["a.db", "b.db"]
        assert args.once
        assert args.verbose
        assert not args.watch

    def test_invalid_storage_type_exits(self, monkeypatch, capsys):
        monkeypatch.setenv("BACKUP_STORAGE_TYPE", "Dropbox")

        with pytest.raises(SystemExit) as exc_info:
            main(["--once"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_once_mode(self, monkeypatch, work_dir, snapshot_dir, restore_logging):
        db = create_database(work_dir / "appdata.db")
        monkeypatch.setenv("BACKUP_STORAGE_TYPE", "File")
        monkeypatch.setenv("BACKUP_REMOTE_PATH", str(work_dir / "backups"))
        monkeypatch.setenv("BACKUP_TEMP_DIR", str(snapshot_dir))
        monkeypatch.setenv("BACKUP_POLL_INTERVAL_SECONDS", "0.05")

        with pytest.raises(SystemExit) as exc_info:
            main([str(db), "--once"])

        assert exc_info.value.code == 0
        assert len(list((work_dir / "backups").iterdir())) == 1

    def test_json_logging(self, restore_logging):
        config = ServiceConfig(observability=ObservabilityConfig(log_level="debug", log_format="json"))

        setup_logging(config)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert type(root.handlers[0].formatter).__name__ == "VerboseJSONFormatter"
