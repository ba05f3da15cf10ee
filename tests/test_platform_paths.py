"""Tests for the platform save-root table."""

from __future__ import annotations

from pathlib import Path

import pytest

from minesync.errors import PathResolutionError
from minesync.platform_paths import normalize_platform, resolve_save_root


def test_linux_save_root_is_under_home(tmp_path: Path):
    assert resolve_save_root("linux", env={}, home=tmp_path) == tmp_path / ".minecraft" / "saves"


def test_darwin_save_root_is_under_application_support(tmp_path: Path):
    expected = tmp_path / "Library" / "Application Support" / "minecraft" / "saves"
    assert resolve_save_root("darwin", env={}, home=tmp_path) == expected


def test_windows_save_root_uses_appdata(tmp_path: Path):
    appdata = tmp_path / "Roaming"
    root = resolve_save_root("win32", env={"APPDATA": str(appdata)}, home=tmp_path)
    assert root == appdata / ".minecraft" / "saves"


def test_windows_save_root_falls_back_without_appdata(tmp_path: Path):
    root = resolve_save_root("win32", env={}, home=tmp_path)
    assert root == tmp_path / "AppData" / "Roaming" / ".minecraft" / "saves"


def test_uwp_save_root_uses_local_appdata(tmp_path: Path):
    root = resolve_save_root("win32-uwp", env={"LOCALAPPDATA": str(tmp_path)}, home=tmp_path)
    assert root.parts[-3:] == ("games", "com.mojang", "minecraftWorlds")
    assert root.parents[5] == tmp_path


@pytest.mark.parametrize(
    "raw, expected",
    [("linux2", "linux"), ("Linux", "linux"), ("cygwin", "win32"), ("windows", "win32"), ("darwin", "darwin")],
)
def test_normalize_platform_aliases(raw: str, expected: str):
    assert normalize_platform(raw) == expected


def test_unknown_platform_is_a_path_resolution_error(tmp_path: Path):
    with pytest.raises(PathResolutionError):
        resolve_save_root("plan9", env={}, home=tmp_path)
