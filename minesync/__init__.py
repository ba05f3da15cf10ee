"""MineSync: keep Minecraft save-games in step with a remote store."""

__version__ = "0.2.0"
