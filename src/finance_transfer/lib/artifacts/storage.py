"""Local filesystem storage for export artifacts.

Exports are written incrementally into a staging file and moved into
place only on commit, so a cancelled or failed export never leaves a
readable artifact behind. Committed files live under
``{base_dir}/{year}/{month}/{uuid}.{ext}``.
"""

import uuid
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

STAGING_DIR = ".staging"
DEFAULT_CHUNK_SIZE = 64 * 1024


class StagedFile:
    """An artifact being written; becomes visible only after ``commit()``."""

    def __init__(self, storage: "LocalArtifactStorage", path: Path, extension: str) -> None:
        self._storage = storage
        self.path = path
        self.extension = extension
        self.size_bytes = 0
        self._handle: Any = None
        self._closed = False

    async def write(self, chunk: bytes) -> None:
        if self._closed:
            msg = "Staged file already closed"
            raise RuntimeError(msg)
        if not chunk:
            return
        if self._handle is None:
            self._handle = await aiofiles.open(self.path, "wb")
        await self._handle.write(chunk)
        self.size_bytes += len(chunk)

    async def _close(self) -> None:
        if self._handle is not None:
            await self._handle.close()
            self._handle = None
        self._closed = True

    async def commit(self) -> str:
        """Move the staged bytes into permanent storage.

        Returns:
            Relative storage path of the committed artifact.
        """
        await self._close()
        if not self.path.exists():
            async with aiofiles.open(self.path, "wb"):
                pass
        relative_path = self._storage.new_relative_path(self.extension)
        target = self._storage.resolve(relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await aiofiles.os.replace(self.path, target)
        return relative_path

    async def discard(self) -> None:
        """Drop the staged bytes; safe to call more than once."""
        await self._close()
        if self.path.exists():
            await aiofiles.os.remove(self.path)


class LocalArtifactStorage:
    """Artifact files on the local filesystem.

    Args:
        base_dir: The root directory for artifact storage.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve(self, stored_path: str) -> Path:
        """Absolute path for a stored relative path, refusing escapes from the base dir."""
        base = self._base_dir.resolve()
        full_path = (base / stored_path).resolve()
        if base not in full_path.parents:
            msg = f"Invalid stored path: {stored_path}"
            raise ValueError(msg)
        return full_path

    def new_relative_path(self, extension: str) -> str:
        now = datetime.now(tz=UTC)
        return f"{now.year}/{now.month:02d}/{uuid.uuid4().hex}.{extension}"

    def stage(self, extension: str) -> StagedFile:
        """Start a new staged artifact with the given file extension."""
        staging = self._base_dir / STAGING_DIR
        staging.mkdir(parents=True, exist_ok=True)
        return StagedFile(self, staging / f"{uuid.uuid4().hex}.{extension}.part", extension)

    async def save(self, content: bytes, extension: str) -> str:
        """Write a complete artifact in one call and return its relative path."""
        staged = self.stage(extension)
        try:
            await staged.write(content)
            return await staged.commit()
        except BaseException:
            await staged.discard()
            raise

    async def stream(self, stored_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the artifact's bytes in chunks.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        full_path = self.resolve(stored_path)
        if not full_path.exists():
            msg = f"File not found: {stored_path}"
            raise FileNotFoundError(msg)
        async with aiofiles.open(full_path, "rb") as f:
            while chunk := await f.read(chunk_size):
                yield chunk

    async def load(self, stored_path: str) -> bytes:
        """Read a whole artifact into memory (CLI and tests)."""
        return b"".join([chunk async for chunk in self.stream(stored_path)])

    async def delete(self, stored_path: str) -> bool:
        """Delete an artifact file.

        Returns:
            True if a file was removed, False if it was already gone.
        """
        full_path = self.resolve(stored_path)
        if not full_path.exists():
            return False
        await aiofiles.os.remove(full_path)
        return True

    def exists(self, stored_path: str) -> bool:
        return self.resolve(stored_path).exists()
