"""
Plugin lifecycle for trellis.

This package provides:
- Plugin: Abstract base class for plugins (register/boot/unregister)
- PluginDescriptor: Static description of a plugin directory
- PluginRegistry: Descriptor discovery and the name -> factory map
- PluginRecordStore: Persistent per-plugin state
- PluginManager: Install, uninstall and version change
- PluginHost: ServiceRegistry, RouteTable and ViewTable the hooks act on
"""

from .base import Plugin
from .descriptor import PluginDescriptor, compare_versions, load_descriptor, parse_version
from .errors import (
    AlreadyAtVersionError,
    DescriptorNotFoundError,
    DuplicateMigrationEntryError,
    InvalidMigrationError,
    InvalidVersionError,
    MigrationError,
    MigrationFailedError,
    PluginAlreadyInstalledError,
    PluginConfigError,
    PluginError,
    PluginLoadError,
    PluginNotFoundError,
    PluginNotInstalledError,
    RouteNotFoundError,
    ServiceNotFoundError,
)
from .host import PluginHost
from .loader import NamespaceLoader
from .manager import PluginManager, PluginState
from .records import PluginRecordStore
from .registry import PluginRegistry
from .routes import Route, RouteTable, ViewTable
from .service_registry import ServiceBinding, ServiceRegistry

__all__ = [
    # Core
    'Plugin',
    'PluginDescriptor',
    'PluginRegistry',
    'PluginRecordStore',
    'PluginManager',
    'PluginState',
    'NamespaceLoader',
    'load_descriptor',
    'parse_version',
    'compare_versions',

    # Capability tables
    'PluginHost',
    'ServiceRegistry',
    'ServiceBinding',
    'RouteTable',
    'Route',
    'ViewTable',

    # Errors
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
