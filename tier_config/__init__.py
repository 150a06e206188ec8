# tier_config package
from .plan_catalog import (
    UNLIMITED,
    FREEMIUM_PLAN,
    PLAN_CATALOG,
    PlanLimits,
    normalize_limit,
    is_unlimited,
    get_plan_definition,
    get_definition_limits,
    get_definition_features,
    seed_plans,
)

__all__ = [
    'UNLIMITED',
    'FREEMIUM_PLAN',
    'PLAN_CATALOG',
    'PlanLimits',
    'normalize_limit',
    'is_unlimited',
    'get_plan_definition',
    'get_definition_limits',
    'get_definition_features',
    'seed_plans',
]
