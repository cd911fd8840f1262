"""Artifact library — staged, streamed storage of export files."""

from finance_transfer.lib.artifacts.storage import DEFAULT_CHUNK_SIZE, LocalArtifactStorage, StagedFile

__all__ = ["DEFAULT_CHUNK_SIZE", "LocalArtifactStorage", "StagedFile"]
