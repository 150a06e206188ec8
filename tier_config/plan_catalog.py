# tier_config/plan_catalog.py
"""
Subscription plan catalog.
Seed definitions for every plan: price, resource limits and feature map.
The database copy is authoritative once seeded; these definitions are the
fallback when the store cannot supply the freemium plan.
"""

from dataclasses import dataclass
from typing import Optional

# Sole sentinel for "no limit"
UNLIMITED = -1

FREEMIUM_PLAN = 'freemium'


def normalize_limit(value: Optional[int]) -> int:
    """
    Normalize a stored limit at the boundary.

    NULL/None means unlimited and becomes -1, never 0.
    """
    if value is None:
        return UNLIMITED
    return int(value)


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


@dataclass(frozen=True)
class PlanLimits:
    """Normalized resource limits for a plan. -1 means unlimited."""
    lots: int = UNLIMITED
    users: int = UNLIMITED
    extranet_tenants: int = UNLIMITED

    def get(self, resource: str) -> int:
        return getattr(self, resource)

    def to_dict(self):
        return {
            'lots': self.lots,
            'users': self.users,
            'extranetTenants': self.extranet_tenants,
        }


# =============================================================================
# PLAN FEATURE DEFINITIONS
# =============================================================================

_FREEMIUM_FEATURES = {
    'dashboard': True,
    'properties_management': True,
    'units_management': True,
    'tenants_basic': True,
    'leases_basic': True,
    'payments_manual_entry': True,
    'receipt_generation': True,
    'basic_tasks': True,
    'email_notifications': True,
    'messaging': True,
    'reports_basic': True,
    'sms_notifications': False,
    'custom_extranet_domain': False,
    'accounting_sycoda_basic': False,
    'accounting_sycoda_full': False,
    'dsf_export': False,
    'bank_sync': False,
    'electronic_signature': False,
    'mobile_offline_edl': False,
    'wave_orange_payment_link': False,
}

_STARTER_FEATURES = {
    'dashboard': True,
    'properties_management': True,
    'units_management': True,
    'tenants_full': True,
    'leases_full': True,
    'payments_all_methods': True,
    'receipt_generation': True,
    'tasks_full': True,
    'email_notifications': True,
    'messaging': True,
    'sms_notifications': True,
    'custom_extranet_domain': False,
    'accounting_sycoda_basic': True,
    'accounting_sycoda_full': False,
    'dsf_export': False,
    'bank_sync': False,
    'electronic_signature': False,
    'mobile_offline_edl': True,
    'wave_orange_payment_link': True,
    'reports_advanced': True,
}

_PRO_FEATURES = {
    **_STARTER_FEATURES,
    'accounting_sycoda_full': True,
    'dsf_export': True,
    'bank_sync': True,
    'electronic_signature': True,
    'copropriete_module': False,
    'marketplace_services': False,
}

_AGENCY_FEATURES = {
    **_PRO_FEATURES,
    'custom_extranet_domain': True,
    'copropriete_module': True,
    'marketplace_services': True,
    'white_label_option': True,
}

_ENTERPRISE_FEATURES = {
    **_AGENCY_FEATURES,
    'full_white_label': True,
    'api_access': True,
    'dedicated_support': True,
    'on_premise_option': True,
}

PLAN_CATALOG = {
    'freemium': {
        'display_name': 'Freemium',
        'price_monthly': 0,
        'limits': {'lots': 5, 'users': 1, 'extranet_tenants': 5},
        'features': _FREEMIUM_FEATURES,
        'sort_order': 0,
    },
    'starter': {
        'display_name': 'Starter',
        'price_monthly': 9900,
        'limits': {'lots': 30, 'users': 2, 'extranet_tenants': 50},
        'features': _STARTER_FEATURES,
        'sort_order': 1,
    },
    'pro': {
        'display_name': 'Pro',
        'price_monthly': 29900,
        'limits': {'lots': 150, 'users': 5, 'extranet_tenants': 300},
        'features': _PRO_FEATURES,
        'sort_order': 2,
    },
    'agency': {
        'display_name': 'Agency',
        'price_monthly': 79900,
        'limits': {'lots': None, 'users': 15, 'extranet_tenants': None},
        'features': _AGENCY_FEATURES,
        'sort_order': 3,
    },
    'enterprise': {
        'display_name': 'Enterprise',
        'price_monthly': None,  # Custom pricing
        'limits': {'lots': None, 'users': None, 'extranet_tenants': None},
        'features': _ENTERPRISE_FEATURES,
        'sort_order': 4,
    },
}


def get_plan_definition(name: str) -> dict:
    """
    Get the seed definition for a plan.

    Unknown names fall back to freemium so callers always receive the
    minimum-privilege plan rather than an error.
    """
    return PLAN_CATALOG.get(name, PLAN_CATALOG[FREEMIUM_PLAN])


def get_definition_limits(name: str) -> PlanLimits:
    limits = get_plan_definition(name)['limits']
    return PlanLimits(
        lots=normalize_limit(limits['lots']),
        users=normalize_limit(limits['users']),
        extranet_tenants=normalize_limit(limits['extranet_tenants']),
    )


def get_definition_features(name: str) -> frozenset:
    features = get_plan_definition(name)['features']
    return frozenset(key for key, enabled in features.items() if enabled is True)


def seed_plans():
    """
    Insert or update every catalog plan.
    Idempotent - safe to call multiple times.

    Returns:
        List of Plan objects
    """
    from models import db, Plan

    plans = []
    for name, definition in PLAN_CATALOG.items():
        plan = Plan.query.filter_by(name=name).first()
        if plan is None:
            plan = Plan(name=name)
            db.session.add(plan)

        limits = definition['limits']
        plan.display_name = definition['display_name']
        plan.price_monthly = definition['price_monthly']
        plan.lots_limit = limits['lots']
        plan.users_limit = limits['users']
        plan.extranet_tenants_limit = limits['extranet_tenants']
        plan.features = dict(definition['features'])
        plan.sort_order = definition['sort_order']
        plan.is_active = True
        plans.append(plan)

    db.session.commit()
    return plans
