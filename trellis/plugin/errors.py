"""
trellis/plugin/errors.py

Plugin-specific exceptions.

Migration failures are defined next to the migration runner and re-exported
here so callers of the lifecycle manager can catch everything from one place.
"""

from ..common.migrations.errors import (
    DuplicateMigrationEntryError,
    InvalidMigrationError,
    MigrationError,
    MigrationFailedError,
)


class PluginError(Exception):
    """Base exception for plugin errors."""
    pass


class PluginConfigError(PluginError):
    """Plugin descriptor invalid or missing."""
    pass


class PluginNotFoundError(PluginError):
    """Plugin not found or not loaded."""
    pass


class DescriptorNotFoundError(PluginNotFoundError):
    """No descriptor is registered under the plugin name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Plugin '{name}' not found")


class PluginLoadError(PluginError):
    """Plugin code failed to load or does not implement the capability set."""
    pass


class PluginAlreadyInstalledError(PluginError):
    """Plugin is already installed and active."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Plugin '{name}' is already installed")


class PluginNotInstalledError(PluginError):
    """Plugin has no installation record."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Plugin '{name}' is not installed")


class AlreadyAtVersionError(PluginError):
    """Version change requested to the version already installed."""

    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__(f"Plugin '{name}' is already at version {version}")


class InvalidVersionError(PluginError, ValueError):
    """Version string is not a dotted numeric triplet."""
    pass


class ServiceNotFoundError(PluginError, LookupError):
    """No implementation is bound to a service interface."""
    pass


class RouteNotFoundError(PluginError, LookupError):
    """No handler is mounted at a path."""
    pass


__all__ = [
    'PluginError',
    'PluginConfigError',
    'PluginNotFoundError',
    'DescriptorNotFoundError',
    'PluginLoadError',
    'PluginAlreadyInstalledError',
    'PluginNotInstalledError',
    'AlreadyAtVersionError',
    'InvalidVersionError',
    'ServiceNotFoundError',
    'RouteNotFoundError',
    'MigrationError',
    'InvalidMigrationError',
    'MigrationFailedError',
    'DuplicateMigrationEntryError',
]
