"""
Unit tests for the local filesystem storage backend.
"""

import asyncio
import io
import logging
import time

import pytest

from ledger11.backup_server.errors import StorageUnavailable
from ledger11.backup_server.storage import LocalStorageProvider, StorageProvider
from tests.utils import SlowReader


class TestLocalStorageProvider:
    """Tests for LocalStorageProvider."""

    def test_implements_protocol(self, work_dir):
        assert isinstance(LocalStorageProvider(work_dir), StorageProvider)

    @pytest.mark.asyncio
    async def test_store_writes_file(self, work_dir):
        """store() copies the stream to root/name."""
        provider = LocalStorageProvider(work_dir / "backups")

        await provider.store(io.BytesIO(b"snapshot bytes"), "appdata-20250101000000.db.bak")

        target = work_dir / "backups" / "appdata-20250101000000.db.bak"
        assert target.read_bytes() == b"snapshot bytes"

    @pytest.mark.asyncio
    async def test_store_creates_nested_directories(self, work_dir):
        """Intermediate directories in the destination name are created."""
        provider = LocalStorageProvider(work_dir)

        await provider.store(io.BytesIO(b"x"), "2025/06/ledger-20250604000000.db.bak")

        assert (work_dir / "2025" / "06" / "ledger-20250604000000.db.bak").exists()

    @pytest.mark.asyncio
    async def test_store_overwrites(self, work_dir):
        """Same-second names replace the earlier file."""
        provider = LocalStorageProvider(work_dir)

        await provider.store(io.BytesIO(b"first"), "a-20250101000000.db.bak")
        await provider.store(io.BytesIO(b"second"), "a-20250101000000.db.bak")

        assert (work_dir / "a-20250101000000.db.bak").read_bytes() == b"second"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("root", ["", "   "])
    async def test_unconfigured_root_is_noop(self, work_dir, monkeypatch, caplog, root):
        """An empty root skips the store without error."""
        monkeypatch.chdir(work_dir)
        provider = LocalStorageProvider(root)

        with caplog.at_level(logging.DEBUG):
            await provider.store(io.BytesIO(b"data"), "a-20250101000000.db.bak")

        assert not provider.is_configured
        assert list(work_dir.iterdir()) == []
        assert "skipping store" in caplog.text

    @pytest.mark.asyncio
    async def test_unwritable_root(self, work_dir):
        """A root that is a regular file raises StorageUnavailable."""
        blocker = work_dir / "not-a-directory"
        blocker.write_text("occupied")
        provider = LocalStorageProvider(blocker)

        with pytest.raises(StorageUnavailable):
            await provider.store(io.BytesIO(b"data"), "a-20250101000000.db.bak")

    @pytest.mark.asyncio
    async def test_store_leaves_only_final_file(self, work_dir):
        """The staging file is renamed onto the final name."""
        provider = LocalStorageProvider(work_dir)

        await provider.store(io.BytesIO(b"data" * 1000), "a-20250101000000.db.bak")

        assert [p.name for p in work_dir.iterdir()] == ["a-20250101000000.db.bak"]

    @pytest.mark.asyncio
    async def test_failed_copy_leaves_nothing(self, work_dir):
        """An I/O error halfway through the copy removes the staging file."""

        class FailingStream(io.BytesIO):
            def read(self, size=-1):
                if self.tell():
                    raise OSError(28, "No space left on device")
                return super().read(4)

        provider = LocalStorageProvider(work_dir)

        with pytest.raises(StorageUnavailable, match="No space left"):
            await provider.store(FailingStream(b"snapshot bytes"), "a-20250101000000.db.bak")

        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_closed_stream_leaves_nothing(self, work_dir):
        """Reading from a stream closed by the caller aborts the copy cleanly."""
        stream = io.BytesIO(b"snapshot bytes")
        stream.close()
        provider = LocalStorageProvider(work_dir)

        with pytest.raises(ValueError):
            await provider.store(stream, "a-20250101000000.db.bak")

        assert list(work_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancelled_store_leaves_nothing(self, work_dir):
        """Cancelling store() stops the copy thread and removes the staging file."""
        provider = LocalStorageProvider(work_dir)
        stream = SlowReader(io.BytesIO(b"x" * 512 * 40))

        task = asyncio.create_task(provider.store(stream, "a-20250101000000.db.bak"))
        while not list(work_dir.iterdir()):
            await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        deadline = time.monotonic() + 5
        while list(work_dir.iterdir()) and time.monotonic() < deadline:
            await asyncio.sleep(0.02)
        assert list(work_dir.iterdir()) == []
