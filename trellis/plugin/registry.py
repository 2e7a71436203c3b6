"""
trellis/plugin/registry.py

Plugin catalog: descriptor discovery plus the name -> factory map.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .descriptor import PluginDescriptor, find_descriptor_file, load_descriptor
from .errors import DescriptorNotFoundError, PluginError, PluginLoadError
from .loader import NamespaceLoader

REQUIRED_HOOKS = ('register', 'boot', 'unregister')


class PluginRegistry:
    """
    Discovers plugin descriptors under the configured search roots.

    Every immediate subdirectory of a root that holds a descriptor file is a
    plugin named after the directory. On load the descriptor's namespaces are
    registered with the code loader and its entry reference is resolved into
    a factory, stored in an explicit name -> factory map. Instances are then
    created from that map only.

    Args:
        paths: Search root directories
        loader: Code loader (default: a new NamespaceLoader)
        logger: Optional logger instance

    Example:
        registry = PluginRegistry(['plugins'])
        registry.load()

        descriptor = registry.require('ExtendedPlan')
        plugin = registry.create('ExtendedPlan', host)
    """

    def __init__(self, paths: Iterable, loader: Optional[NamespaceLoader] = None,
                 logger: Optional[logging.Logger] = None):
        self.paths = [Path(p) for p in paths]
        self.loader = loader or NamespaceLoader()
        self.logger = logger or logging.getLogger(__name__)

        self._descriptors: Dict[str, PluginDescriptor] = {}
        self._factories: Dict[str, Callable] = {}

    # =================================================================
    # Discovery
    # =================================================================

    def discover(self) -> List[Path]:
        """
        Find plugin directories in the search roots.

        Returns:
            Plugin directories, sorted by name within each root
        """
        found = []
        for root in self.paths:
            if not root.is_dir():
                self.logger.debug(f"Plugin path does not exist: {root}")
                continue
            for directory in sorted(root.iterdir(), key=lambda p: p.name):
                if directory.is_dir() and find_descriptor_file(directory) is not None:
                    found.append(directory)
        return found

    def load(self) -> List[PluginDescriptor]:
        """
        Scan every search root and register the descriptors found.

        Malformed plugins are logged and skipped. When two roots contain the
        same plugin name, the first root wins.

        Returns:
            Descriptors registered by this scan
        """
        loaded = []
        seen = set()
        for directory in self.discover():
            name = directory.name
            if name in seen:
                self.logger.warning(
                    f"Duplicate plugin '{name}' in {directory.parent}, keeping the first one"
                )
                continue
            seen.add(name)

            try:
                loaded.append(self._load_directory(directory))
            except PluginError as e:
                self.logger.error(f"Failed to load plugin descriptor from {directory}: {e}")

        self.logger.info(f"Registered {len(loaded)} plugin descriptor(s)")
        return loaded

    def reload(self, name: str) -> PluginDescriptor:
        """
        Re-read one plugin's descriptor and code from disk.

        Only this plugin's descriptor, namespaces and factory are replaced.

        Raises:
            DescriptorNotFoundError: If the plugin is unknown
            PluginConfigError: If the descriptor is now malformed
            PluginLoadError: If the entry can no longer be resolved
        """
        directory = self.require(name).path
        descriptor = self._load_directory(directory)
        self.logger.info(f"Reloaded plugin descriptor {descriptor}")
        return descriptor

    def _load_directory(self, directory: Path) -> PluginDescriptor:
        descriptor = load_descriptor(directory)

        previous = self._descriptors.get(descriptor.name)
        if previous is not None:
            for namespace in previous.namespaces:
                if namespace not in descriptor.namespaces:
                    self.loader.forget(namespace)

        for namespace, source in descriptor.namespaces.items():
            self.loader.register(namespace, source)

        factory = self.loader.import_entry(descriptor.entry)
        if not callable(factory):
            raise PluginLoadError(f"Plugin entry '{descriptor.entry}' is not callable")

        self._descriptors[descriptor.name] = descriptor
        self._factories[descriptor.name] = factory
        self.logger.debug(f"Registered plugin {descriptor} ({descriptor.entry})")
        return descriptor

    # =================================================================
    # Lookup
    # =================================================================

    def get(self, name: str) -> Optional[PluginDescriptor]:
        return self._descriptors.get(name)

    def require(self, name: str) -> PluginDescriptor:
        """
        Get a descriptor or fail.

        Raises:
            DescriptorNotFoundError: If no descriptor is registered under name
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise DescriptorNotFoundError(name)
        return descriptor

    def names(self) -> List[str]:
        return sorted(self._descriptors)

    def descriptors(self) -> List[PluginDescriptor]:
        return [self._descriptors[name] for name in self.names()]

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    # =================================================================
    # Factories
    # =================================================================

    def register_factory(self, name: str, factory: Callable) -> None:
        """Override the factory used to instantiate a registered plugin."""
        self.require(name)
        self._factories[name] = factory

    def factory(self, name: str) -> Callable:
        self.require(name)
        return self._factories[name]

    def create(self, name: str, host):
        """
        Instantiate a plugin from its factory.

        The factory is called as factory(host, descriptor).

        Raises:
            DescriptorNotFoundError: If the plugin is unknown
            PluginLoadError: If the factory fails or the object lacks
                register/boot/unregister
        """
        descriptor = self.require(name)
        try:
            plugin = self._factories[name](host, descriptor)
        except Exception as e:
            raise PluginLoadError(f"Failed to instantiate plugin '{name}': {e}") from e

        missing = [hook for hook in REQUIRED_HOOKS if not callable(getattr(plugin, hook, None))]
        if missing:
            raise PluginLoadError(
                f"Plugin '{name}' does not implement {', '.join(missing)}"
            )
        return plugin

    def forget(self, name: str) -> None:
        """Drop a plugin's descriptor, factory and namespaces."""
        descriptor = self._descriptors.pop(name, None)
        self._factories.pop(name, None)
        if descriptor is not None:
            for namespace in descriptor.namespaces:
                self.loader.forget(namespace)

    def close(self) -> None:
        """Forget every plugin and detach the code loader."""
        self._descriptors.clear()
        self._factories.clear()
        self.loader.clear()
