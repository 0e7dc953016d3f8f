"""CLI command modules for the plugin system."""

from cli.commands.plugins import plugins_app

__all__ = ["plugins_app"]
