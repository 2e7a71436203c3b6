"""
Extended plan service.
"""


class ExtendedPlanService:
    """Implementation of the host's 'plan' interface."""

    PLAN = 'extended'

    def get_plan(self) -> str:
        return self.PLAN
