"""Sync client: inventory, reconciliation and transfer of save-games."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import (
    FilesystemError,
    MineSyncError,
    PathResolutionError,
    ProtocolError,
    SyncConnectionError,
)
from ..platform_paths import normalize_platform, resolve_save_root
from .archive import unpack
from .inventory import (
    ARCHIVE_PREFIX,
    ARCHIVE_SUFFIX,
    Inventory,
    SaveEntry,
    archive_name,
    build_local_inventory,
    save_name_from_archive,
)
from .reconcile import SyncPlan, plan_sync
from .transport import EndpointSettings, SyncTransport

logger = logging.getLogger("minesync.sync.client")


@dataclass
class SyncSettings:
    """Settings for sync operations."""

    endpoints: EndpointSettings
    save_root: str = ""
    platform: str = ""

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SyncSettings":
        raw = config.get("saves", {}) if config else {}
        return cls(
            endpoints=EndpointSettings.from_config(config or {}),
            save_root=str(raw.get("root", "") or ""),
            platform=str(raw.get("platform", "") or ""),
        )


@dataclass
class SyncResult:
    """Result of a sync operation."""

    success: bool
    uploaded: int = 0
    downloaded: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ""
    plan: Optional[SyncPlan] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "uploaded": self.uploaded,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "errors": self.errors,
            "message": self.message,
        }


class SyncClient:
    """Synchronizes the local save root with the remote store."""

    def __init__(
        self,
        settings: SyncSettings,
        transport: Optional[SyncTransport] = None,
        env: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
        progress_callback: Optional[Callable[[str, int, int], None]] = None,
    ):
        self.settings = settings
        self.transport = transport or SyncTransport(settings.endpoints)
        self.progress_callback = progress_callback
        self._env = env
        self._home = home

    def resolve_save_root(self) -> Path:
        """Locate the save-games root; a missing root is fatal."""
        if self.settings.save_root:
            root = Path(self.settings.save_root).expanduser()
        else:
            root = resolve_save_root(self.settings.platform or None, env=self._env, home=self._home)

        if not root.is_dir():
            raise PathResolutionError(f"Save directory '{root}' does not exist")
        return root

    def build_plan(self) -> SyncPlan:
        """Compare local saves against the remote manifest."""
        _, local, remote = self._inventories()
        return plan_sync(local, remote)

    def _inventories(self) -> tuple:
        root = self.resolve_save_root()
        local = build_local_inventory(root)
        remote = self.transport.fetch_manifest()
        return root, local, remote

    def run(self, dry_run: bool = False) -> SyncResult:
        """Perform a full sync: uploads first, then downloads."""
        result = SyncResult(success=True)

        try:
            root, local, remote = self._inventories()
        except PathResolutionError as e:
            return self._fatal(result, f"Save directory unavailable: {e}", e)
        except FilesystemError as e:
            return self._fatal(result, f"Could not list local saves: {e}", e)
        except (ProtocolError, SyncConnectionError) as e:
            return self._fatal(result, f"Could not read remote manifest: {e}", e)

        plan = plan_sync(local, remote)
        result.plan = plan
        self._report_progress("Reconciled inventories", 1, 3)

        for rejected in plan.rejected:
            logger.error("Skipping colliding saves: %s", rejected)
            result.errors.append(str(rejected))
            result.skipped += len(rejected.names)

        if dry_run:
            result.message = f"Dry run: {plan.summary()}"
            result.success = not result.errors
            return result

        for entry in plan.uploads:
            if self._upload_one(entry, result):
                result.uploaded += 1
        self._report_progress("Uploaded saves", 2, 3)

        claimed: Dict[Path, str] = {}
        for entry in plan.downloads:
            if self._download_one(entry, local, root, result, claimed):
                result.downloaded += 1
        self._report_progress("Downloaded saves", 3, 3)

        result.success = not result.errors
        if result.errors:
            result.message = f"{plan.summary()} ({len(result.errors)} failed)"
        else:
            result.message = plan.summary()
        return result

    def _upload_one(self, entry: SaveEntry, result: SyncResult) -> bool:
        logger.info("Syncing %s to the server", entry.name, extra={"save": entry.name})
        try:
            self.transport.upload(entry)
        except (MineSyncError, OSError) as e:
            logger.error("Failed to upload %s: %s", entry.name, e, extra={"save": entry.name})
            result.errors.append(f"upload {entry.name}: {e}")
            return False
        return True

    def _download_one(
        self,
        entry: SaveEntry,
        local: Sequence[SaveEntry],
        root: Path,
        result: SyncResult,
        claimed: Dict[Path, str],
    ) -> bool:
        logger.info("Fetching %s from the server", entry.name, extra={"save": entry.name})
        try:
            target = local_target_for(entry, local, root)
            key = Path(os.path.normcase(target))
            if key in claimed:
                raise FilesystemError(
                    f"'{target}' is already the target of '{claimed[key]}' in this run", target
                )
            claimed[key] = entry.name
            envelope = self.transport.download(entry)
            unpack(envelope.payload, target)
            stamp = entry.last_modified.timestamp()
            os.utime(target, (stamp, stamp))
        except (MineSyncError, OSError) as e:
            logger.error("Failed to download %s: %s", entry.name, e, extra={"save": entry.name})
            result.errors.append(f"download {entry.name}: {e}")
            return False
        return True

    def _fatal(self, result: SyncResult, message: str, error: Exception) -> SyncResult:
        logger.error(message)
        result.success = False
        result.message = message
        result.errors.append(str(error))
        return result

    def _report_progress(self, message: str, current: int, total: int) -> None:
        """Report progress if callback is configured."""
        if self.progress_callback:
            self.progress_callback(message, current, total)
        logger.debug("Sync progress: %s (%d/%d)", message, current, total)

    def get_status(self) -> Dict[str, Any]:
        """Describe where saves live and where they are synced to."""
        status: Dict[str, Any] = {
            "platform": normalize_platform(self.settings.platform or None),
            "save_root": None,
            "save_root_exists": False,
            "local_saves": 0,
            "endpoints": self.settings.endpoints.to_dict(),
            "error": None,
        }
        try:
            root = self.resolve_save_root()
            status["save_root"] = str(root)
            status["save_root_exists"] = True
            status["local_saves"] = len(build_local_inventory(root))
        except PathResolutionError as e:
            status["error"] = str(e)
        except FilesystemError as e:
            status["save_root"] = str(e.path)
            status["error"] = str(e)
        return status


def local_target_for(entry: SaveEntry, local: Inventory, root: Path) -> Path:
    """Directory a downloaded archive is unpacked into.

    An existing save mapping to the archive keeps its directory; otherwise
    the archive name minus prefix and suffix is used, and that path must
    not exist yet. Only names of the form ``minesync_<name>.zip`` are
    accepted, so nothing but the reconciled match is ever replaced.
    """
    for candidate in local:
        if candidate.archive_name == entry.name and candidate.path is not None:
            return candidate.path

    name = save_name_from_archive(entry.name)
    if archive_name(name) != entry.name:
        raise ProtocolError(
            f"Remote archive name '{entry.name}' is not of the form "
            f"'{ARCHIVE_PREFIX}<save>{ARCHIVE_SUFFIX}'"
        )
    if name in ("", ".", "..") or "/" in name or "\\" in name or "\0" in name:
        raise ProtocolError(f"Remote archive name '{entry.name}' is not a usable directory name")

    target = root / name
    if os.path.lexists(target):
        raise FilesystemError(
            f"Refusing to replace '{target}': it does not belong to '{entry.name}'", target
        )
    return target


__all__ = ["SyncClient", "SyncSettings", "SyncResult", "local_target_for"]
