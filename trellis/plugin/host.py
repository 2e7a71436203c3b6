"""
trellis/plugin/host.py

The capability tables a plugin's hooks act on.
"""

import logging
from typing import Optional

from .routes import RouteTable, ViewTable
from .service_registry import ServiceRegistry


class PluginHost:
    """
    Process-wide owner of the service registry, route table and view table.

    Plugins receive the host in their constructor and only reach the host
    application through it.

    Attributes:
        services: ServiceRegistry for interface overrides
        routes: RouteTable of mounted handlers
        views: ViewTable of view namespaces

    Example:
        host = PluginHost()
        host.services.set_default('plan', SimplePlanService)
        manager = PluginManager(database, settings, host=host)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.services = ServiceRegistry(logger=self.logger)
        self.routes = RouteTable()
        self.views = ViewTable()

    def reset(self) -> None:
        """Back to the host defaults: no overrides, routes or view namespaces."""
        self.services.reset()
        self.routes.clear()
        self.views.clear()
        self.logger.debug('Plugin host tables reset')
