"""Local and remote save inventories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging
import os
from pathlib import Path
import socket
from typing import List, Optional

from ..errors import FilesystemError
from .protocol import DEFAULT_MAX_MESSAGE_SIZE, receive_manifest

logger = logging.getLogger("minesync.sync.inventory")

ARCHIVE_PREFIX = "minesync_"
ARCHIVE_SUFFIX = ".zip"


class Origin(str, Enum):
    """Which side of the sync a save entry was read from."""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class SaveEntry:
    """One save-game: a directory locally, an archive remotely."""

    name: str
    last_modified: datetime
    origin: Origin
    path: Optional[Path] = None  # Local directory, None for remote entries

    @property
    def archive_name(self) -> str:
        if self.origin is Origin.REMOTE:
            return self.name
        return archive_name(self.name)

    def __str__(self) -> str:
        return f"{self.name} ({self.last_modified.isoformat()})"


Inventory = List[SaveEntry]


def archive_name(save_name: str) -> str:
    """Map a local save name onto its remote archive name."""
    return ARCHIVE_PREFIX + save_name.replace(" ", "_") + ARCHIVE_SUFFIX


def save_name_from_archive(name: str) -> str:
    """Strip the archive prefix and suffix from a remote name.

    Underscores are left alone: the original spaces cannot be recovered.
    """
    stem = name
    if stem.startswith(ARCHIVE_PREFIX):
        stem = stem[len(ARCHIVE_PREFIX):]
    if stem.endswith(ARCHIVE_SUFFIX):
        stem = stem[: -len(ARCHIVE_SUFFIX)]
    return stem


def build_local_inventory(root: Path) -> Inventory:
    """List the save directories directly under ``root``.

    Plain files are ignored; a save is always a directory.
    """
    try:
        with os.scandir(root) as it:
            children = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise FilesystemError(f"Cannot list save directory '{root}': {exc}", root) from exc

    inventory: Inventory = []
    for child in children:
        try:
            if not child.is_dir():
                continue
            stat = child.stat()
        except OSError as exc:
            raise FilesystemError(f"Cannot read save '{child.path}': {exc}", child.path) from exc

        inventory.append(
            SaveEntry(
                name=child.name,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                origin=Origin.LOCAL,
                path=Path(child.path),
            )
        )

    logger.info("Found %d local saves under %s", len(inventory), root)
    return inventory


def build_remote_inventory(
    connection: socket.socket,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
) -> Inventory:
    """Read one manifest message from ``connection`` and list its saves."""

    manifest = receive_manifest(connection, max_size)
    inventory = [
        SaveEntry(name=entry.name, last_modified=entry.last_modified, origin=Origin.REMOTE)
        for entry in manifest.saves
    ]
    logger.info("Remote manifest lists %d saves", len(inventory))
    return inventory


__all__ = [
    "ARCHIVE_PREFIX",
    "ARCHIVE_SUFFIX",
    "Inventory",
    "Origin",
    "SaveEntry",
    "archive_name",
    "build_local_inventory",
    "build_remote_inventory",
    "save_name_from_archive",
]
