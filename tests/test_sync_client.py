"""Tests for the sync orchestration."""

from __future__ import annotations

from datetime import datetime, timezone
import os
import socket
from pathlib import Path
from typing import Dict, List

import pytest

from minesync.errors import (
    ArchiveError,
    FilesystemError,
    PathResolutionError,
    ProtocolError,
    SyncConnectionError,
)
from minesync.sync.archive import pack_bytes
from minesync.sync.client import SyncClient, SyncSettings, local_target_for
from minesync.sync.inventory import Origin, SaveEntry, build_local_inventory
from minesync.sync import transport as transport_module
from minesync.sync.protocol import SyncEnvelope, receive_envelope
from minesync.sync.transport import EndpointSettings, SyncTransport


def _ts(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class _FakeTransport:
    """In-memory stand-in for the three endpoints."""

    def __init__(self, remote: List[SaveEntry], archives: Dict[str, bytes] = None) -> None:
        self.remote = remote
        self.archives = archives or {}
        self.uploaded: List[str] = []
        self.fail_uploads: Dict[str, Exception] = {}
        self.fail_downloads: Dict[str, Exception] = {}
        self.manifest_error = None

    def fetch_manifest(self):
        if self.manifest_error:
            raise self.manifest_error
        return list(self.remote)

    def upload(self, entry: SaveEntry) -> int:
        if entry.name in self.fail_uploads:
            raise self.fail_uploads[entry.name]
        self.uploaded.append(entry.archive_name)
        return 1

    def download(self, entry: SaveEntry) -> SyncEnvelope:
        if entry.name in self.fail_downloads:
            raise self.fail_downloads[entry.name]
        return SyncEnvelope(name=entry.name, payload=self.archives[entry.name])


def _settings(root: Path) -> SyncSettings:
    return SyncSettings(endpoints=EndpointSettings.from_config({}), save_root=str(root))


def _make_save(root: Path, name: str, mtime: int, content: bytes = b"level") -> Path:
    save = root / name
    save.mkdir(parents=True)
    (save / "level.dat").write_bytes(content)
    os.utime(save, (mtime, mtime))
    return save


def _archive(tmp_path: Path, content: bytes) -> bytes:
    staging = tmp_path / "staging" / content.decode("ascii")
    staging.mkdir(parents=True)
    (staging / "level.dat").write_bytes(content)
    return pack_bytes(staging)


def test_settings_from_config_reads_save_section():
    settings = SyncSettings.from_config({"saves": {"root": "~/saves", "platform": "darwin"}})

    assert settings.save_root == "~/saves"
    assert settings.platform == "darwin"
    assert str(settings.endpoints.upload) == "127.0.0.1:9999"


def test_resolve_save_root_uses_platform_table(tmp_path: Path):
    root = tmp_path / ".minecraft" / "saves"
    root.mkdir(parents=True)
    settings = SyncSettings(endpoints=EndpointSettings.from_config({}), platform="linux")

    client = SyncClient(settings, transport=_FakeTransport([]), home=tmp_path)

    assert client.resolve_save_root() == root


def test_resolve_save_root_missing_is_fatal(tmp_path: Path):
    client = SyncClient(_settings(tmp_path / "nope"), transport=_FakeTransport([]))

    with pytest.raises(PathResolutionError):
        client.resolve_save_root()


def test_run_uploads_then_downloads(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "World 1", 100)
    _make_save(root, "Old World", 10, b"stale")
    remote = [
        SaveEntry("minesync_World_1.zip", _ts(50), Origin.REMOTE),
        SaveEntry("minesync_Old_World.zip", _ts(200), Origin.REMOTE),
        SaveEntry("minesync_New.zip", _ts(300), Origin.REMOTE),
    ]
    transport = _FakeTransport(
        remote,
        archives={
            "minesync_Old_World.zip": _archive(tmp_path, b"fresh"),
            "minesync_New.zip": _archive(tmp_path, b"brand"),
        },
    )

    result = SyncClient(_settings(root), transport=transport).run()

    assert result.success, result.errors
    assert result.uploaded == 1
    assert result.downloaded == 2
    assert transport.uploaded == ["minesync_World_1.zip"]
    assert (root / "Old World" / "level.dat").read_bytes() == b"fresh"
    assert (root / "New" / "level.dat").read_bytes() == b"brand"
    assert (root / "New").stat().st_mtime == 300


def test_downloaded_saves_are_not_transferred_again(tmp_path: Path):
    root = tmp_path / "saves"
    root.mkdir()
    remote = [SaveEntry("minesync_New.zip", _ts(300), Origin.REMOTE)]
    transport = _FakeTransport(remote, archives={"minesync_New.zip": _archive(tmp_path, b"brand")})
    client = SyncClient(_settings(root), transport=transport)

    client.run()
    plan = client.build_plan()

    assert not plan.has_changes


def test_upload_failure_does_not_block_other_entries(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "A", 10)
    _make_save(root, "B", 10)
    transport = _FakeTransport([])
    transport.fail_uploads["A"] = SyncConnectionError("refused", endpoint="127.0.0.1:9999")

    result = SyncClient(_settings(root), transport=transport).run()

    assert not result.success
    assert result.uploaded == 1
    assert transport.uploaded == ["minesync_B.zip"]
    assert any("upload A" in error for error in result.errors)


def test_download_failure_does_not_block_other_entries(tmp_path: Path):
    root = tmp_path / "saves"
    root.mkdir()
    remote = [
        SaveEntry("minesync_Broken.zip", _ts(5), Origin.REMOTE),
        SaveEntry("minesync_Fine.zip", _ts(5), Origin.REMOTE),
    ]
    transport = _FakeTransport(
        remote,
        archives={"minesync_Broken.zip": b"not a zip", "minesync_Fine.zip": _archive(tmp_path, b"fine")},
    )

    result = SyncClient(_settings(root), transport=transport).run()

    assert result.downloaded == 1
    assert not (root / "Broken").exists()
    assert (root / "Fine" / "level.dat").read_bytes() == b"fine"
    assert len(result.errors) == 1


def test_manifest_failure_is_fatal_and_transfers_nothing(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "A", 10)
    transport = _FakeTransport([])
    transport.manifest_error = ProtocolError("Connection closed after 2 of 4 bytes of frame header")

    result = SyncClient(_settings(root), transport=transport).run()

    assert not result.success
    assert result.plan is None
    assert "remote manifest" in result.message
    assert transport.uploaded == []


def test_missing_save_root_is_fatal(tmp_path: Path):
    result = SyncClient(_settings(tmp_path / "missing"), transport=_FakeTransport([])).run()

    assert not result.success
    assert "Save directory unavailable" in result.message


def test_dry_run_transfers_nothing(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "A", 10)
    transport = _FakeTransport([SaveEntry("minesync_B.zip", _ts(1), Origin.REMOTE)])

    result = SyncClient(_settings(root), transport=transport).run(dry_run=True)

    assert result.success
    assert transport.uploaded == []
    assert result.message == "Dry run: 1 to upload, 1 to download"


def test_colliding_saves_are_reported_and_skipped(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "My World", 10)
    _make_save(root, "My_World", 20)
    transport = _FakeTransport([])

    result = SyncClient(_settings(root), transport=transport).run()

    assert transport.uploaded == []
    assert result.skipped == 2
    assert not result.success


def test_progress_callback_is_invoked(tmp_path: Path):
    root = tmp_path / "saves"
    root.mkdir()
    calls = []

    SyncClient(
        _settings(root),
        transport=_FakeTransport([]),
        progress_callback=lambda message, current, total: calls.append((current, total)),
    ).run()

    assert calls == [(1, 3), (2, 3), (3, 3)]


def test_local_target_prefers_existing_directory(tmp_path: Path):
    _make_save(tmp_path, "World 1", 10)
    local = build_local_inventory(tmp_path)

    existing = local_target_for(SaveEntry("minesync_World_1.zip", _ts(1), Origin.REMOTE), local, tmp_path)
    fresh = local_target_for(SaveEntry("minesync_Other_World.zip", _ts(1), Origin.REMOTE), local, tmp_path)

    assert existing == tmp_path / "World 1"
    assert fresh == tmp_path / "Other_World"


@pytest.mark.parametrize("name", ["minesync_...zip", "minesync_a/b.zip", "minesync_.zip"])
def test_local_target_rejects_unsafe_names(tmp_path: Path, name: str):
    with pytest.raises(ProtocolError):
        local_target_for(SaveEntry(name, _ts(1), Origin.REMOTE), [], tmp_path)


def test_get_status_reports_root_and_endpoints(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "A", 10)

    status = SyncClient(_settings(root), transport=_FakeTransport([])).get_status()

    assert status["save_root"] == str(root)
    assert status["local_saves"] == 1
    assert status["endpoints"]["manifest"] == "127.0.0.1:9998"
    assert status["error"] is None


def test_foreign_archive_name_never_replaces_local_save(tmp_path: Path):
    root = tmp_path / "saves"
    _make_save(root, "Foo", 1000, b"precious")
    remote = [SaveEntry("Foo.zip", _ts(1), Origin.REMOTE)]
    transport = _FakeTransport(remote, archives={"Foo.zip": _archive(tmp_path, b"remote")})

    result = SyncClient(_settings(root), transport=transport).run()

    assert not result.success
    assert result.downloaded == 0
    assert (root / "Foo" / "level.dat").read_bytes() == b"precious"
    assert any("Foo.zip" in error for error in result.errors)


def test_names_sharing_a_directory_unpack_only_once(tmp_path: Path):
    root = tmp_path / "saves"
    root.mkdir()
    remote = [
        SaveEntry("minesync_X.zip", _ts(5), Origin.REMOTE),
        SaveEntry("minesync_X", _ts(9), Origin.REMOTE),
    ]
    transport = _FakeTransport(
        remote,
        archives={"minesync_X.zip": _archive(tmp_path, b"first"), "minesync_X": _archive(tmp_path, b"second")},
    )

    result = SyncClient(_settings(root), transport=transport).run()

    assert result.downloaded == 1
    assert (root / "X" / "level.dat").read_bytes() == b"first"
    assert len(result.errors) == 1
    assert "minesync_X" in result.errors[0]


def test_repeated_download_target_is_refused(tmp_path: Path):
    root = tmp_path / "saves"
    root.mkdir()
    remote = [
        SaveEntry("minesync_Twin.zip", _ts(5), Origin.REMOTE),
        SaveEntry("minesync_Twin.zip", _ts(9), Origin.REMOTE),
    ]
    transport = _FakeTransport(remote, archives={"minesync_Twin.zip": _archive(tmp_path, b"twin")})
    transport.fail_downloads["minesync_Twin.zip"] = SyncConnectionError("reset", endpoint="127.0.0.1:9997")

    result = SyncClient(_settings(root), transport=transport).run()

    assert result.downloaded == 0
    assert not (root / "Twin").exists()
    assert len(result.errors) == 2
    assert "already the target" in result.errors[1]


def test_local_target_refuses_unmatched_existing_path(tmp_path: Path):
    (tmp_path / "Foo").write_text("not a save", encoding="utf-8")

    with pytest.raises(FilesystemError):
        local_target_for(SaveEntry("minesync_Foo.zip", _ts(1), Origin.REMOTE), [], tmp_path)


@pytest.mark.parametrize("name", ["Foo.zip", "minesync_Foo", "minesync_A B.zip", "other_Foo.zip"])
def test_local_target_rejects_foreign_archive_names(tmp_path: Path, name: str):
    with pytest.raises(ProtocolError):
        local_target_for(SaveEntry(name, _ts(1), Origin.REMOTE), [], tmp_path)


def test_archive_failure_does_not_block_other_uploads(tmp_path: Path, monkeypatch):
    root = tmp_path / "saves"
    _make_save(root, "A", 10)
    _make_save(root, "B", 10, b"bravo")
    peers: List[socket.socket] = []

    def connector(address, timeout=None):
        ours, theirs = socket.socketpair()
        peers.append(theirs)
        return ours

    real_pack = transport_module.pack_bytes

    def pack_or_fail(path: Path) -> bytes:
        if path.name == "A":
            raise ArchiveError(f"Cannot read '{path / 'level.dat'}'", path)
        return real_pack(path)

    monkeypatch.setattr(transport_module, "pack_bytes", pack_or_fail)
    transport = SyncTransport(EndpointSettings.from_config({}), connector=connector)
    monkeypatch.setattr(transport, "fetch_manifest", lambda: [])

    result = SyncClient(_settings(root), transport=transport).run()

    assert not result.success
    assert result.uploaded == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("upload A:")
    received = receive_envelope(peers[1], 1 << 20)
    assert received.name == "minesync_B.zip"
    for peer in peers:
        peer.close()
