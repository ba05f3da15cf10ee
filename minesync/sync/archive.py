"""Packing save directories into zip archives and back."""

from __future__ import annotations

import io
import logging
import os
from pathlib import Path, PurePosixPath
import shutil
import tempfile
from typing import Union
import zipfile
import zlib

from ..errors import ArchiveError

logger = logging.getLogger("minesync.sync.archive")

PathLike = Union[str, os.PathLike]


def pack(source_directory: PathLike, destination: PathLike) -> Path:
    """Zip the tree under ``source_directory`` into ``destination``.

    Member names are relative to ``source_directory``; empty directories get
    their own entries. A partially written archive is removed on failure.
    """
    source = Path(source_directory)
    target = Path(destination)
    if not source.is_dir():
        raise ArchiveError(f"Save directory '{source}' does not exist", source)

    try:
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for dirpath, dirnames, filenames in os.walk(source):
                dirnames.sort()
                current = Path(dirpath)
                rel_dir = current.relative_to(source)
                if rel_dir != Path(".") and not filenames and not dirnames:
                    archive.writestr(rel_dir.as_posix() + "/", b"")
                for filename in sorted(filenames):
                    file_path = current / filename
                    archive.write(file_path, (rel_dir / filename).as_posix())
    except (OSError, zipfile.LargeZipFile, ValueError) as exc:
        _remove_quietly(target)
        raise ArchiveError(f"Failed to archive '{source}': {exc}", source) from exc

    logger.debug("Packed %s into %s (%d bytes)", source, target, target.stat().st_size)
    return target


def pack_bytes(source_directory: PathLike) -> bytes:
    """Pack into a temporary archive, read it back and delete it."""

    fd, tmp_name = tempfile.mkstemp(prefix="minesync_", suffix=".zip")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        pack(source_directory, tmp_path)
        try:
            return tmp_path.read_bytes()
        except OSError as exc:
            raise ArchiveError(f"Failed to read archive '{tmp_path}': {exc}", tmp_path) from exc
    finally:
        _remove_quietly(tmp_path)


def unpack(data: bytes, destination_directory: PathLike) -> Path:
    """Extract archive ``data`` so that it becomes ``destination_directory``.

    Extraction happens in a staging directory beside the destination; the
    destination is only replaced once every member has been written.
    """
    destination = Path(destination_directory)
    parent = destination.parent
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArchiveError(f"Cannot create '{parent}': {exc}", parent) from exc

    staging = Path(tempfile.mkdtemp(prefix=".minesync-unpack-", dir=parent))
    try:
        _extract(data, staging)
        _replace_directory(staging, destination)
    except ArchiveError:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    except OSError as exc:
        shutil.rmtree(staging, ignore_errors=True)
        raise ArchiveError(f"Failed to unpack into '{destination}': {exc}", destination) from exc

    logger.debug("Unpacked %d bytes into %s", len(data), destination)
    return destination


def _extract(data: bytes, staging: Path) -> None:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            bad_member = archive.testzip()
            if bad_member is not None:
                raise ArchiveError(f"Archive member '{bad_member}' is corrupt")
            for info in archive.infolist():
                _check_member(info.filename)
            archive.extractall(staging)
    except ArchiveError:
        raise
    except (zipfile.BadZipFile, zlib.error, EOFError, ValueError, NotImplementedError) as exc:
        raise ArchiveError(f"Archive is corrupt or truncated: {exc}") from exc


def _check_member(name: str) -> None:
    member = PurePosixPath(name.replace("\\", "/"))
    if member.is_absolute() or ".." in member.parts or (member.parts and ":" in member.parts[0]):
        raise ArchiveError(f"Archive member '{name}' escapes the destination directory")


def _replace_directory(staging: Path, destination: Path) -> None:
    if not destination.exists():
        staging.rename(destination)
        return

    backup = destination.with_name(f".{destination.name}.minesync-old")
    if backup.exists():
        shutil.rmtree(backup)
    destination.rename(backup)
    try:
        staging.rename(destination)
    except OSError:
        backup.rename(destination)
        raise
    shutil.rmtree(backup, ignore_errors=True)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary archive %s: %s", path, exc)


__all__ = ["pack", "pack_bytes", "unpack"]
