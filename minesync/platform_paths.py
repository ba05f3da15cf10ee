"""Per-platform location of the Minecraft save-games directory."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys
from typing import Dict, Mapping, Optional, Tuple

from .errors import PathResolutionError


@dataclass(frozen=True)
class SaveRootRule:
    """How to build a save root: a base directory plus path parts.

    ``base`` is either ``"home"`` or the name of an environment variable.
    When the variable is unset, ``fallback`` (relative to the home
    directory) stands in for it.
    """

    base: str
    parts: Tuple[str, ...]
    fallback: Tuple[str, ...] = ()


PLATFORM_SAVE_ROOTS: Dict[str, SaveRootRule] = {
    "linux": SaveRootRule(base="home", parts=(".minecraft", "saves")),
    "darwin": SaveRootRule(
        base="home",
        parts=("Library", "Application Support", "minecraft", "saves"),
    ),
    "win32": SaveRootRule(
        base="APPDATA",
        parts=(".minecraft", "saves"),
        fallback=("AppData", "Roaming"),
    ),
    "win32-uwp": SaveRootRule(
        base="LOCALAPPDATA",
        parts=(
            "Packages",
            "Microsoft.MinecraftUWP_8wekyb3d8bbwe",
            "LocalState",
            "games",
            "com.mojang",
            "minecraftWorlds",
        ),
        fallback=("AppData", "Local"),
    ),
}

_PLATFORM_ALIASES = {
    "linux2": "linux",
    "cygwin": "win32",
    "msys": "win32",
    "windows": "win32",
    "macos": "darwin",
}


def normalize_platform(value: Optional[str] = None) -> str:
    """Map a platform identifier onto a key of ``PLATFORM_SAVE_ROOTS``."""

    raw = (value or sys.platform).strip().lower()
    if raw in PLATFORM_SAVE_ROOTS:
        return raw
    if raw in _PLATFORM_ALIASES:
        return _PLATFORM_ALIASES[raw]
    if raw.startswith("linux"):
        return "linux"
    return raw


def resolve_save_root(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return the save root for ``platform`` using the lookup table."""

    key = normalize_platform(platform)
    rule = PLATFORM_SAVE_ROOTS.get(key)
    if rule is None:
        raise PathResolutionError(f"Could not determine save directory for platform '{key}'")

    env_source = os.environ if env is None else env
    if home is None:
        try:
            home = Path.home()
        except RuntimeError as exc:
            raise PathResolutionError(f"Could not determine home directory: {exc}") from exc

    if rule.base == "home":
        base = home
    else:
        raw = env_source.get(rule.base)
        base = Path(raw) if raw else home.joinpath(*rule.fallback)

    return base.joinpath(*rule.parts)


__all__ = [
    "PLATFORM_SAVE_ROOTS",
    "SaveRootRule",
    "normalize_platform",
    "resolve_save_root",
]
