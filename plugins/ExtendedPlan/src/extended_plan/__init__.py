"""ExtendedPlan plugin: replaces the host's plan service."""

from .plugin import ExtendedPlan
from .service import ExtendedPlanService

__all__ = ['ExtendedPlan', 'ExtendedPlanService']
