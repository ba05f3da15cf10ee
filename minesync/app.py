"""
Command-line entry point for MineSync.

Runs a single command (``sync run`` when none is given) against the merged
configuration and exits.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
import sys
from typing import List, Optional, Sequence

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_config_dir,
)
from .logging_utils import setup_logging
from .router import CommandRouter

DEFAULT_COMMAND = ["sync", "run"]
logger = logging.getLogger("minesync")


def build_router(config: ConfigurationBundle) -> CommandRouter:
    """Register every command against the loaded configuration."""

    router = CommandRouter(config)
    for command in COMMANDS:
        router.register(command)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print warnings and errors so operators can correct issues quickly."""

    relevant = [diag for diag in config.diagnostics if diag.level != "info"]
    if not relevant:
        return

    print("[config] Diagnostics:", file=sys.stderr)
    for diag in relevant:
        prefix = diag.source or config.config_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]", file=sys.stderr)


def _log_path_within(log_path: Path, directory: Path) -> bool:
    try:
        log_path.relative_to(directory)
        return True
    except ValueError:
        return False


def configure_logging(config_bundle: ConfigurationBundle) -> Path:
    logging_cfg = (config_bundle.merged or {}).get("logging", {}) or {}
    ui_cfg = (config_bundle.merged or {}).get("ui", {}) or {}
    env_level = os.environ.get("MINESYNC_LOG_LEVEL")
    level_name = (env_level or logging_cfg.get("level") or "INFO").upper()

    log_path = setup_logging(
        config_bundle.config_dir,
        level_name,
        structured=bool(logging_cfg.get("structured", False)),
        verbose=bool(ui_cfg.get("verbose", True)),
    )
    config_bundle.log_path = log_path
    if not _log_path_within(log_path, config_bundle.config_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=(
                    "Config directory is not writable; "
                    f"logging to fallback path '{log_path}'."
                ),
                source=log_path,
            )
        )
    return log_path


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``minesync`` console script."""

    args: List[str] = list(sys.argv[1:] if argv is None else argv)
    if not args:
        args = list(DEFAULT_COMMAND)

    config_bundle = load_runtime_configuration(resolve_config_dir())
    log_path = configure_logging(config_bundle)
    emit_configuration_report(config_bundle)
    logger.debug("Logging initialized at %s", log_path)

    if config_bundle.status == "invalid":
        print("[minesync] Configuration is invalid; fix the errors above.", file=sys.stderr)
        return 2

    router = build_router(config_bundle)
    output = router.handle(args[0], args[1:])
    print(output)

    result = router.metadata.get("last_result")
    if result is not None and not result.success:
        return 1
    return 0


__all__ = ["build_router", "configure_logging", "emit_configuration_report", "main"]
