"""
ExtendedPlan plugin.

Overrides the 'plan' service and mounts a page at /extendedPlan rendering
the extendedPlan::index view with the current plan.
"""

from trellis.plugin import Plugin

from .service import ExtendedPlanService

PLAN_SERVICE = 'plan'


class ExtendedPlan(Plugin):
    """
    Sample plugin.

    Example:
        manager.install('ExtendedPlan')
        host.routes.dispatch('/extendedPlan')   # '... service value:extended ...'
    """

    NS = 'extendedPlan'

    def register(self) -> None:
        self.register_service(PLAN_SERVICE, ExtendedPlanService)
        self.logger.debug('ExtendedPlan registered')

    def boot(self) -> None:
        self.register_route(self.NS, {'': self.index}, name=self.NS)
        self.register_view(self.NS, 'views')
        self.logger.debug('ExtendedPlan booted')

    def unregister(self) -> None:
        self.unregister_route_and_view(self.NS)
        self.unregister_service(PLAN_SERVICE)
        self.logger.debug('ExtendedPlan unregistered')

    def index(self) -> str:
        plan = self.host.services.resolve(PLAN_SERVICE).get_plan()
        return self.host.views.render(f'{self.NS}::index', plan=plan)
