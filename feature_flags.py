# feature_flags.py
"""
Per-organization plan features based on the subscription.
Features are controlled by:
1. The organization's subscription, when its status is active or trialing
2. The referenced plan's feature map (keys whose value is true)
3. The freemium plan for everything else: no subscription, inactive
   subscription, missing plan or a store error
"""

import logging
from functools import wraps
from typing import Optional

from tier_config import (
    FREEMIUM_PLAN,
    get_definition_features,
    get_definition_limits,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PLAN RESOLUTION
# =============================================================================

def _static_freemium(status: Optional[str] = None):
    from services.security.types import PlanFeatures

    return PlanFeatures(
        plan_name=FREEMIUM_PLAN,
        features=get_definition_features(FREEMIUM_PLAN),
        limits=get_definition_limits(FREEMIUM_PLAN),
        status=status,
        is_fallback=True,
    )


def get_freemium_features(status: Optional[str] = None):
    """
    Freemium plan as stored, or the catalog definition if it was never seeded.
    """
    from models import Plan
    from services.security.types import PlanFeatures

    plan = Plan.query.filter_by(name=FREEMIUM_PLAN).first()
    if plan is None:
        return _static_freemium(status)
    return PlanFeatures(
        plan_name=plan.name,
        features=plan.enabled_features,
        limits=plan.limits,
        status=status,
        is_fallback=True,
    )


def load_org_features(org_id: Optional[int]):
    """
    Resolve an organization's effective plan straight from the store.

    Pure read. Raises on store errors; get_org_features() handles those.
    """
    from models import Subscription
    from services.security.types import PlanFeatures

    if org_id is None:
        return get_freemium_features()

    subscription = Subscription.query.filter_by(organization_id=org_id).first()
    if subscription is None:
        return get_freemium_features()
    if not subscription.is_effective:
        return get_freemium_features(status=subscription.status)

    plan = subscription.plan
    if plan is None or not plan.is_active:
        logger.warning(f"Subscription {subscription.id} references a missing or inactive plan, using freemium")
        return get_freemium_features(status=subscription.status)

    return PlanFeatures(
        plan_name=plan.name,
        features=plan.enabled_features,
        limits=plan.limits,
        status=subscription.status,
    )


def get_org_features(org_id: Optional[int], cache=None):
    """
    Get the effective plan and enabled features for an organization.

    Never raises: any lookup error degrades to freemium. Fallbacks caused by
    errors are not cached, so recovery is immediate.

    Args:
        org_id: Organization ID (None resolves to freemium)
        cache: PermissionCache (defaults to the application's cache)

    Returns:
        PlanFeatures
    """
    from models import db
    from services.cache_helpers import get_permission_cache, org_key

    try:
        if cache is None:
            cache = get_permission_cache()
        if org_id is None:
            return load_org_features(None)
        return cache.get_or_load(org_key('features', org_id), lambda: load_org_features(org_id))
    except Exception as e:
        logger.exception(f"Plan lookup failed for organization {org_id}, falling back to freemium: {e}")
        try:
            db.session.rollback()
        except Exception:
            logger.exception("Session rollback failed after plan lookup error")
        return _static_freemium()


# =============================================================================
# FEATURE CHECK FUNCTIONS
# =============================================================================

def org_has_feature(feature_key: str, org_id: Optional[int] = None) -> bool:
    """
    Check if an organization's plan enables a feature.

    Args:
        feature_key: Feature key (e.g., 'properties_management')
        org_id: Organization ID (optional, uses current_user's org if None)

    Returns:
        True if the organization's effective plan enables the feature
    """
    from flask_login import current_user

    if org_id is None:
        if not current_user.is_authenticated:
            return False
        org_id = current_user.organization_id

    return get_org_features(org_id).has_feature(feature_key)


def invalidate_org_features(org_id: int):
    """Drop the cached plan for an organization after a subscription change."""
    from services.cache_helpers import clear_org_cache

    clear_org_cache(org_id)


# =============================================================================
# ROUTE PROTECTION DECORATOR
# =============================================================================

def feature_required(feature_key: str):
    """
    Decorator to require a plan feature for a route.
    Returns 403 JSON with reason 'feature_not_available' so the client can
    render an upgrade prompt.

    Usage:
        @feature_required('bank_sync')
        def bank_sync():
            ...
    """
    from flask import jsonify
    from flask_login import current_user

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'success': False, 'error': 'Authentication required.'}), 401

            plan = get_org_features(current_user.organization_id)
            if not plan.has_feature(feature_key):
                return jsonify({
                    'success': False,
                    'error': 'This feature requires a subscription upgrade.',
                    'reason': 'feature_not_available',
                    'failedLevel': 'plan',
                    'feature': feature_key,
                    'planName': plan.plan_name,
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
