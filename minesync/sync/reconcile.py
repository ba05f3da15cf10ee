"""Reconciliation of local and remote save inventories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..errors import NameCollisionError
from .inventory import SaveEntry, archive_name


def _find_remote(name: str, remote: Sequence[SaveEntry]) -> Optional[SaveEntry]:
    for candidate in remote:
        if candidate.name == name:
            return candidate
    return None


def _find_local(name: str, local: Sequence[SaveEntry]) -> Optional[SaveEntry]:
    for candidate in local:
        if archive_name(candidate.name) == name:
            return candidate
    return None


def compute_uploads(local: Sequence[SaveEntry], remote: Sequence[SaveEntry]) -> List[SaveEntry]:
    """Local saves that are missing remotely or strictly newer than the remote copy."""
    uploads: List[SaveEntry] = []
    for entry in local:
        match = _find_remote(archive_name(entry.name), remote)
        if match is None or entry.last_modified > match.last_modified:
            uploads.append(entry)
    return uploads


def compute_downloads(local: Sequence[SaveEntry], remote: Sequence[SaveEntry]) -> List[SaveEntry]:
    """Remote saves that are missing locally or strictly newer than the local copy."""
    downloads: List[SaveEntry] = []
    for entry in remote:
        match = _find_local(entry.name, local)
        if match is None or entry.last_modified > match.last_modified:
            downloads.append(entry)
    return downloads


def find_archive_name_collisions(local: Sequence[SaveEntry]) -> Dict[str, List[SaveEntry]]:
    """Group local saves that map onto the same archive name."""
    groups: Dict[str, List[SaveEntry]] = {}
    for entry in local:
        groups.setdefault(archive_name(entry.name), []).append(entry)
    return {name: entries for name, entries in groups.items() if len(entries) > 1}


@dataclass
class SyncPlan:
    """Upload and download lists computed for one run."""

    uploads: List[SaveEntry] = field(default_factory=list)
    downloads: List[SaveEntry] = field(default_factory=list)
    rejected: List[NameCollisionError] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.uploads or self.downloads)

    def summary(self) -> str:
        parts = []
        if self.uploads:
            parts.append(f"{len(self.uploads)} to upload")
        if self.downloads:
            parts.append(f"{len(self.downloads)} to download")
        if self.rejected:
            parts.append(f"{len(self.rejected)} name collisions")
        return ", ".join(parts) if parts else "no changes"


def plan_sync(local: Sequence[SaveEntry], remote: Sequence[SaveEntry]) -> SyncPlan:
    """Reconcile both inventories, rejecting colliding local saves."""

    collisions = find_archive_name_collisions(local)
    rejected = [
        NameCollisionError(name, [entry.name for entry in entries])
        for name, entries in collisions.items()
    ]

    usable_local = [entry for entry in local if archive_name(entry.name) not in collisions]
    usable_remote = [entry for entry in remote if entry.name not in collisions]

    return SyncPlan(
        uploads=compute_uploads(usable_local, usable_remote),
        downloads=compute_downloads(usable_local, usable_remote),
        rejected=rejected,
    )


__all__ = [
    "SyncPlan",
    "compute_downloads",
    "compute_uploads",
    "find_archive_name_collisions",
    "plan_sync",
]
