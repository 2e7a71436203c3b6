"""
trellis/plugin/base.py

Abstract plugin base class.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from .descriptor import PluginDescriptor


class Plugin(ABC):
    """
    Abstract base class for plugins.

    A plugin is built by its factory as Plugin(host, descriptor) and driven
    by the lifecycle manager through three hooks.

    Lifecycle:
        1. __init__() - Construct plugin (fast, no I/O)
        2. register() - Override service interfaces
        3. boot() - Mount routes and views; other services are available
        4. [plugin runs]
        5. unregister() - Undo register() and boot()

    Attributes:
        host: PluginHost with services, routes and views
        descriptor: PluginDescriptor the plugin was loaded from
        logger: Logger instance for this plugin

    Example:
        class ExtendedPlan(Plugin):
            NS = 'extendedPlan'

            def register(self):
                self.register_service('plan', ExtendedPlanService)

            def boot(self):
                self.register_route('extended-plan', {'': self.index}, name=self.NS)
                self.register_view(self.NS, 'views')

            def unregister(self):
                self.unregister_route_and_view('extended-plan')
                self.unregister_service('plan')
    """

    def __init__(self, host, descriptor: Optional[PluginDescriptor] = None):
        """
        Initialize plugin.

        Args:
            host: PluginHost instance
            descriptor: Descriptor of the plugin directory
        """
        self.host = host
        self.descriptor = descriptor
        self.logger = logging.getLogger(f"plugin.{self.name}")
        self._view_namespaces = []

    @property
    def name(self) -> str:
        """Plugin name (descriptor directory name, class name without one)."""
        if self.descriptor is not None:
            return self.descriptor.name
        return self.__class__.__name__

    @property
    def version(self) -> Optional[str]:
        return self.descriptor.version if self.descriptor is not None else None

    # =================================================================
    # Hooks
    # =================================================================

    @abstractmethod
    def register(self) -> None:
        """Install or override service capabilities."""
        pass

    @abstractmethod
    def boot(self) -> None:
        """Side effects that need registered services (routes, views)."""
        pass

    @abstractmethod
    def unregister(self) -> None:
        """Reverse register() and detach routes/views under the plugin prefix."""
        pass

    # =================================================================
    # Helpers
    # =================================================================

    def register_service(self, interface: Any, implementation: Any) -> None:
        self.host.services.register(interface, implementation, provider=self.name)

    def unregister_service(self, interface: Any) -> None:
        self.host.services.unregister(interface)

    def register_route(self, prefix: str, handlers: Mapping[str, Callable],
                       name: Optional[str] = None) -> None:
        self.host.routes.mount(prefix, handlers, name=name)

    def register_view(self, namespace: str, path: Union[str, Path]) -> None:
        """
        Register a view namespace.

        Relative paths are resolved against the plugin directory.
        """
        path = Path(path)
        if not path.is_absolute() and self.descriptor is not None:
            path = self.descriptor.path / path
        self.host.views.add_namespace(namespace, path)
        if namespace not in self._view_namespaces:
            self._view_namespaces.append(namespace)

    def unregister_route_and_view(self, prefix: str) -> None:
        """Unmount routes under prefix and drop the view namespaces this plugin added."""
        self.host.routes.unmount(prefix)
        for namespace in self._view_namespaces:
            self.host.views.remove_namespace(namespace)
        self._view_namespaces = []
        self.host.views.flush()

    def __str__(self) -> str:
        return f"{self.name} v{self.version}" if self.version else self.name

    def __repr__(self) -> str:
        return f"<Plugin: {self}>"
