"""Tests for local artifact storage."""

from pathlib import Path

import pytest

from finance_transfer.lib.artifacts import LocalArtifactStorage


class TestStagedFile:
    """Tests for staged writes."""

    @pytest.mark.asyncio
    async def test_commit_moves_file_into_place(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        staged = storage.stage("csv")
        await staged.write(b"a,b\n")
        await staged.write(b"1,2\n")
        assert staged.size_bytes == 8

        stored_path = await staged.commit()
        assert stored_path.endswith(".csv")
        assert not staged.path.exists()
        assert storage.resolve(stored_path).read_bytes() == b"a,b\n1,2\n"

    @pytest.mark.asyncio
    async def test_discard_removes_staged_bytes(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        staged = storage.stage("json")
        await staged.write(b"{}")
        await staged.discard()
        await staged.discard()
        assert not staged.path.exists()
        assert list((tmp_path / ".staging").iterdir()) == []

    @pytest.mark.asyncio
    async def test_write_after_commit_raises(self, tmp_path: Path) -> None:
        staged = LocalArtifactStorage(tmp_path).stage("csv")
        await staged.commit()
        with pytest.raises(RuntimeError):
            await staged.write(b"late")

    @pytest.mark.asyncio
    async def test_commit_without_writes_creates_empty_file(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        stored_path = await storage.stage("csv").commit()
        assert storage.resolve(stored_path).read_bytes() == b""


class TestLocalArtifactStorage:
    """Tests for LocalArtifactStorage."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        stored_path = await storage.save(b"%PDF-1.4", "pdf")
        assert storage.exists(stored_path)
        assert await storage.load(stored_path) == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_stream_in_chunks(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        stored_path = await storage.save(b"x" * 10, "csv")
        chunks = [chunk async for chunk in storage.stream(stored_path, chunk_size=4)]
        assert chunks == [b"xxxx", b"xxxx", b"xx"]

    @pytest.mark.asyncio
    async def test_stream_missing_file_raises(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        with pytest.raises(FileNotFoundError):
            await storage.load("2024/01/missing.csv")

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path)
        stored_path = await storage.save(b"data", "csv")
        assert await storage.delete(stored_path) is True
        assert await storage.delete(stored_path) is False

    def test_resolve_rejects_escape(self, tmp_path: Path) -> None:
        storage = LocalArtifactStorage(tmp_path / "exports")
        with pytest.raises(ValueError, match="Invalid stored path"):
            storage.resolve("../../etc/passwd")

    def test_relative_path_layout(self, tmp_path: Path) -> None:
        path = LocalArtifactStorage(tmp_path).new_relative_path("xlsx")
        year, month, name = path.split("/")
        assert len(year) == 4
        assert len(month) == 2
        assert name.endswith(".xlsx")
