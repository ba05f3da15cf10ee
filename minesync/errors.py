"""Error taxonomy shared by the MineSync modules."""

from __future__ import annotations

from typing import Optional


class MineSyncError(Exception):
    """Base class for every error raised by MineSync."""


class PathResolutionError(MineSyncError):
    """The save-games root cannot be determined or accessed."""


class FilesystemError(MineSyncError):
    """Enumeration or read/write failure on the local filesystem."""

    def __init__(self, message: str, path: Optional[object] = None) -> None:
        super().__init__(message)
        self.path = path


class ArchiveError(FilesystemError):
    """Packing or unpacking a save archive failed."""


class ProtocolError(MineSyncError):
    """A frame, envelope or manifest was malformed or truncated."""


class SyncConnectionError(MineSyncError, ConnectionError):
    """Dialing, reading or writing an endpoint failed."""

    def __init__(self, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint


class NameCollisionError(MineSyncError):
    """Several local saves map onto the same archive name."""

    def __init__(self, archive: str, names: list[str]) -> None:
        joined = ", ".join(repr(name) for name in names)
        super().__init__(f"Saves {joined} all map to archive '{archive}'")
        self.archive = archive
        self.names = names


__all__ = [
    "MineSyncError",
    "PathResolutionError",
    "FilesystemError",
    "ArchiveError",
    "ProtocolError",
    "SyncConnectionError",
    "NameCollisionError",
]
