"""
Usage / Limit Guard

Compares live resource counts against plan limits.

- Plan change: existing usage must not exceed the target plan's limits
  (strict >). Every violation is reported, not just the first.
- Resource creation: one more unit may be added only while usage is below
  the limit (>= means at or over).

A limit of -1 is unlimited and never checked.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from tier_config import PlanLimits, is_unlimited

from .exceptions import InvalidRequestError, LimitExceededError, PlanChangeError

logger = logging.getLogger(__name__)

RESOURCE_LOTS = 'lots'
RESOURCE_USERS = 'users'
RESOURCE_EXTRANET_TENANTS = 'extranet_tenants'

RESOURCES = (RESOURCE_LOTS, RESOURCE_USERS, RESOURCE_EXTRANET_TENANTS)

RESOURCE_LABELS = {
    RESOURCE_LOTS: 'lots',
    RESOURCE_USERS: 'users',
    RESOURCE_EXTRANET_TENANTS: 'extranet tenants',
}

RESOURCE_NAMES = {
    RESOURCE_LOTS: 'Lot',
    RESOURCE_USERS: 'User',
    RESOURCE_EXTRANET_TENANTS: 'Extranet tenant',
}


@dataclass(frozen=True)
class UsageCounts:
    lots: int = 0
    users: int = 0
    extranet_tenants: int = 0
    pending_invitations: int = 0

    def get(self, resource: str) -> int:
        return getattr(self, resource)

    def to_dict(self):
        return {
            'lots': self.lots,
            'users': self.users,
            'extranetTenants': self.extranet_tenants,
            'pendingInvitations': self.pending_invitations,
        }


@dataclass(frozen=True)
class PlanChangeValidation:
    target_plan: str
    current_usage: UsageCounts
    target_limits: PlanLimits
    errors: Tuple[str, ...] = field(default_factory=tuple)
    is_downgrade: bool = False

    @property
    def allowed(self) -> bool:
        return not self.errors

    def to_dict(self):
        return {
            'allowed': self.allowed,
            'targetPlan': self.target_plan,
            'errors': list(self.errors),
            'currentUsage': self.current_usage.to_dict(),
            'targetLimits': self.target_limits.to_dict(),
            'isDowngrade': self.is_downgrade,
        }


# =============================================================================
# COUNTS
# =============================================================================

def get_current_usage(org_id: int, now: Optional[datetime] = None) -> UsageCounts:
    """
    Count live resources for an organization.

    Lots are units on the organization's properties; users are active
    members; extranet tenants are tenants with extranet access.
    """
    from models import Property, Tenant, Unit, User, UserInvitation

    return UsageCounts(
        lots=Unit.query.join(Property).filter(Property.organization_id == org_id).count(),
        users=User.query.filter_by(organization_id=org_id, is_active=True).count(),
        extranet_tenants=Tenant.query.filter_by(organization_id=org_id, has_extranet_access=True).count(),
        pending_invitations=UserInvitation.pending_for_org(org_id, now).count(),
    )


# =============================================================================
# PLAN CHANGE
# =============================================================================

def find_limit_violations(usage: UsageCounts, limits: PlanLimits, plan_label: str) -> List[str]:
    """
    List every resource whose existing usage exceeds the new limit.

    Args:
        usage: Current counts
        limits: Target plan limits (-1 is unlimited)
        plan_label: Plan name used in the messages

    Returns:
        Human-readable messages, one per violated resource
    """
    errors = []
    for resource in RESOURCES:
        limit = limits.get(resource)
        if is_unlimited(limit):
            continue
        current = usage.get(resource)
        if current > limit:
            errors.append(
                f"You have {current} {RESOURCE_LABELS[resource]}, "
                f"but the {plan_label} plan allows only {limit}."
            )
    return errors


def _get_plan(plan_name: str):
    from models import Plan

    plan = Plan.query.filter_by(name=plan_name, is_active=True).first()
    if plan is None:
        raise InvalidRequestError(f"Unknown plan: {plan_name!r}", field='planName', value=plan_name)
    return plan


def validate_plan_change(org_id: int, target_plan_name: str) -> PlanChangeValidation:
    """
    Validate moving an organization to another plan.

    Raises:
        InvalidRequestError: If the target plan does not exist
    """
    from models import Subscription

    target = _get_plan(target_plan_name)
    usage = get_current_usage(org_id)

    subscription = Subscription.query.filter_by(organization_id=org_id).first()
    current_plan = subscription.plan if subscription else None
    is_downgrade = current_plan is not None and target.sort_order < current_plan.sort_order

    errors = find_limit_violations(usage, target.limits, target.display_name)
    return PlanChangeValidation(
        target_plan=target.name,
        current_usage=usage,
        target_limits=target.limits,
        errors=tuple(errors),
        is_downgrade=is_downgrade,
    )


def change_plan(org_id: int, target_plan_name: str, actor_id: Optional[int] = None):
    """
    Move an organization's subscription to another plan.

    The subscription row is updated in a single commit; the organization's
    cached plan is dropped afterwards so the next decision sees the change.

    Returns:
        The updated Subscription

    Raises:
        InvalidRequestError: If the target plan does not exist
        PlanChangeError: If the subscription is not active/trialing or
            current usage exceeds the target limits
    """
    from models import db, Subscription
    from feature_flags import invalidate_org_features
    from services.audit_service import log_plan_changed

    subscription = Subscription.query.filter_by(organization_id=org_id).first()
    if subscription is None:
        raise PlanChangeError("No subscription found for this organization.")
    if not subscription.is_effective:
        raise PlanChangeError(
            f"Subscription is {subscription.status}. Only active or trialing subscriptions can change plan."
        )

    validation = validate_plan_change(org_id, target_plan_name)
    if not validation.allowed:
        raise PlanChangeError(
            f"Current usage exceeds the limits of the {validation.target_plan} plan.",
            errors=validation.errors,
            current_usage=validation.current_usage,
            target_limits=validation.target_limits,
            is_downgrade=validation.is_downgrade,
        )

    target = _get_plan(target_plan_name)
    if subscription.plan_id == target.id:
        return subscription

    old_plan_name = subscription.plan.name if subscription.plan else None
    subscription.plan_id = target.id
    log_plan_changed(org_id, old_plan_name, target.name, validation.is_downgrade, actor_id=actor_id)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_org_features(org_id)
    logger.info(f"Organization {org_id} moved from {old_plan_name} to {target.name}")
    return subscription


# =============================================================================
# RESOURCE CREATION
# =============================================================================

def _creation_usage(resource: str, usage: UsageCounts) -> int:
    if resource == RESOURCE_USERS:
        # Pending invitations hold a seat until they expire or are revoked
        return usage.users + usage.pending_invitations
    return usage.get(resource)


def check_can_add(org_id: int, resource: str) -> tuple[bool, str]:
    """
    Check if an organization can add one more unit of a resource.

    Returns:
        Tuple of (allowed: bool, message: str)
    """
    from feature_flags import get_org_features

    if resource not in RESOURCES:
        raise InvalidRequestError(f"Unknown resource: {resource!r}", field='resource', value=resource)

    limit = get_org_features(org_id).limits.get(resource)
    if is_unlimited(limit):
        return True, ""

    current = _creation_usage(resource, get_current_usage(org_id))
    if current >= limit:
        label = RESOURCE_LABELS[resource]
        return False, f"{RESOURCE_NAMES[resource]} limit reached ({limit} {label}). Please upgrade your plan."

    return True, ""


def assert_can_add(org_id: int, resource: str):
    """
    Raise before any side effect if the resource limit is already met.

    Raises:
        LimitExceededError: If usage is at or over the limit
    """
    from feature_flags import get_org_features

    allowed, message = check_can_add(org_id, resource)
    if not allowed:
        limit = get_org_features(org_id).limits.get(resource)
        current = _creation_usage(resource, get_current_usage(org_id))
        logger.info(f"Organization {org_id} blocked adding {resource}: {current}/{limit}")
        raise LimitExceededError(message, resource=resource, current=current, limit=limit)


def get_usage_warnings(org_id: int, threshold: float = 0.8) -> List[dict]:
    """
    Near-limit and at-limit warnings for UI banners.

    Args:
        org_id: Organization ID
        threshold: Fraction of the limit at which a warning starts

    Returns:
        List of dicts with resource, current, limit and level
        ('warning', 'limit_reached' or 'over_limit')
    """
    from feature_flags import get_org_features

    limits = get_org_features(org_id).limits
    usage = get_current_usage(org_id)

    warnings = []
    for resource in RESOURCES:
        limit = limits.get(resource)
        if is_unlimited(limit):
            continue
        current = usage.get(resource)
        if current > limit:
            level = 'over_limit'
        elif current >= limit:
            level = 'limit_reached'
        elif limit and current >= limit * threshold:
            level = 'warning'
        else:
            continue
        warnings.append({'resource': resource, 'current': current, 'limit': limit, 'level': level})
    return warnings
