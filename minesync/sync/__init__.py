"""Save-game synchronization for MineSync."""

from __future__ import annotations

from .archive import pack, pack_bytes, unpack
from .inventory import (
    Inventory,
    Origin,
    SaveEntry,
    archive_name,
    build_local_inventory,
    build_remote_inventory,
    save_name_from_archive,
)
from .protocol import ManifestEntry, SaveManifest, SyncEnvelope, read_frame, write_frame
from .reconcile import SyncPlan, compute_downloads, compute_uploads, find_archive_name_collisions, plan_sync
from .transport import Endpoint, EndpointSettings, SyncTransport
from .client import SyncClient, SyncResult, SyncSettings

__all__ = [
    # Archive
    "pack",
    "pack_bytes",
    "unpack",
    # Inventory
    "Inventory",
    "Origin",
    "SaveEntry",
    "archive_name",
    "build_local_inventory",
    "build_remote_inventory",
    "save_name_from_archive",
    # Protocol
    "ManifestEntry",
    "SaveManifest",
    "SyncEnvelope",
    "read_frame",
    "write_frame",
    # Reconcile
    "SyncPlan",
    "compute_downloads",
    "compute_uploads",
    "find_archive_name_collisions",
    "plan_sync",
    # Transport
    "Endpoint",
    "EndpointSettings",
    "SyncTransport",
    # Client
    "SyncClient",
    "SyncResult",
    "SyncSettings",
]
