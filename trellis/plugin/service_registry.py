"""Service registry for capability overrides.

The host binds a default implementation to each service interface at boot.
A plugin's register() hook may override that binding; its unregister() hook
restores the default. Callers always resolve through the registry, so the
override takes effect everywhere at once.

Example:
    >>> registry = ServiceRegistry()
    >>> registry.set_default("plan", SimplePlanService)
    >>>
    >>> # Plugin overrides the interface
    >>> registry.register("plan", ExtendedPlanService, provider="ExtendedPlan")
    >>> registry.resolve("plan")
    <ExtendedPlanService ...>
    >>>
    >>> # Plugin unregisters, default is back
    >>> registry.unregister("plan")
    >>> registry.resolve("plan")
    <SimplePlanService ...>
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import ServiceNotFoundError


@dataclass
class ServiceBinding:
    """An implementation bound to an interface.

    Attributes:
        interface: Service interface key
        implementation: Class, factory callable or instance
        provider: Name of the plugin that bound it (None for host defaults)
    """
    interface: Any
    implementation: Any
    provider: Optional[str] = None


def interface_name(interface: Any) -> str:
    return interface if isinstance(interface, str) else getattr(
        interface, '__name__', repr(interface))


class ServiceRegistry:
    """Registry mapping service interfaces to implementations.

    Interfaces are any hashable key, usually a string or an abstract class.

    Attributes:
        _defaults: Host bindings, restored when an override is removed
        _overrides: Plugin bindings, shadowing the defaults
        _logger: Logger instance
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize the service registry.

        Args:
            logger: Optional logger instance. If not provided, uses module logger.
        """
        self._defaults: Dict[Any, ServiceBinding] = {}
        self._overrides: Dict[Any, ServiceBinding] = {}
        self._logger = logger or logging.getLogger(__name__)

    def set_default(self, interface: Any, implementation: Any) -> None:
        """Bind the host's default implementation of an interface."""
        self._defaults[interface] = ServiceBinding(interface, implementation)
        self._logger.debug(f"Default for service '{interface_name(interface)}' set")

    def register(self, interface: Any, implementation: Any,
                 provider: Optional[str] = None) -> None:
        """Override an interface's implementation.

        Replaces any previous override of the same interface.

        Args:
            interface: Service interface key
            implementation: Class, factory callable or instance
            provider: Name of the plugin providing the implementation

        Example:
            >>> registry.register("plan", ExtendedPlanService, provider="ExtendedPlan")
        """
        previous = self._overrides.get(interface)
        if previous is not None and previous.provider != provider:
            self._logger.warning(
                f"Service '{interface_name(interface)}' from '{previous.provider}' "
                f"replaced by '{provider}'"
            )

        self._overrides[interface] = ServiceBinding(interface, implementation, provider)
        self._logger.info(
            f"Registered service '{interface_name(interface)}' from '{provider or 'host'}'"
        )

    def unregister(self, interface: Any) -> None:
        """Remove an override; the default binding applies again.

        Unregistering an interface without an override is a no-op.
        """
        binding = self._overrides.pop(interface, None)
        if binding is not None:
            self._logger.info(
                f"Unregistered service '{interface_name(interface)}' "
                f"from '{binding.provider or 'host'}'"
            )

    def binding(self, interface: Any) -> Optional[ServiceBinding]:
        """Current binding of an interface (override first, then default)."""
        return self._overrides.get(interface) or self._defaults.get(interface)

    def resolve(self, interface: Any) -> Any:
        """Build the current implementation of an interface.

        Classes and other callables are called with no arguments on every
        resolution; any other bound object is returned as is.

        Raises:
            ServiceNotFoundError: If nothing is bound to the interface
        """
        binding = self.binding(interface)
        if binding is None:
            raise ServiceNotFoundError(
                f"Service '{interface_name(interface)}' is not registered"
            )

        implementation = binding.implementation
        if callable(implementation):
            return implementation()
        return implementation

    def has(self, interface: Any) -> bool:
        return interface in self._overrides or interface in self._defaults

    def is_overridden(self, interface: Any) -> bool:
        return interface in self._overrides

    def reset(self) -> None:
        """Drop every override, keeping the defaults."""
        self._overrides.clear()

    def list_services(self) -> List[Dict[str, Any]]:
        """List current bindings.

        Returns:
            One dict per interface with name, implementation and provider

        Example:
            >>> for service in registry.list_services():
            ...     print(f"{service['name']} <- {service['provider']}")
        """
        services = []
        for interface in list(self._defaults) + [
                i for i in self._overrides if i not in self._defaults]:
            binding = self.binding(interface)
            services.append({
                'name': interface_name(interface),
                'implementation': binding.implementation,
                'provider': binding.provider,
                'overridden': interface in self._overrides,
            })
        return services

    def get_providers(self, provider: str) -> List[Any]:
        """Interfaces currently overridden by a plugin."""
        return [
            interface for interface, binding in self._overrides.items()
            if binding.provider == provider
        ]
