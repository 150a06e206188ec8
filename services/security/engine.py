"""
Access Decision Engine

Combines the Feature Gate, the Object Permission Resolver and the override
rules into one verdict for (user, object type, action), and for a specific
record via the instance checks.

Order of evaluation:
1. Overrides: super-admin, then organization admin (canEdit on Organization)
2. Plan: the object type's feature must be enabled by the organization's plan
3. Profile: the permission row for the object type must grant the action

Well-formed queries never raise. Store failures become a Deny with reason
'resolution_failed'. Malformed queries raise InvalidRequestError.
"""

import logging
from typing import Optional, Tuple

from feature_flags import get_org_features
from services.cache_helpers import PermissionCache, get_permission_cache

from .exceptions import InvalidRequestError
from .object_security import check_instance
from .resolver import is_super_admin, resolve_permissions
from .types import (
    AccessDecision,
    Action,
    FailedLevel,
    ObjectType,
    ProfileGrants,
    Reason,
    features_for,
    parse_action,
    parse_object_type,
)

logger = logging.getLogger(__name__)


def _validate(user, object_type, action) -> Tuple[ObjectType, Action]:
    if user is None or getattr(user, 'id', None) is None:
        raise InvalidRequestError("An identified user is required", field='user')
    return parse_object_type(object_type), parse_action(action)


def _rollback():
    from models import db

    try:
        db.session.rollback()
    except Exception:
        logger.exception("Session rollback failed after authorization error")


def _evaluate(user, object_type: ObjectType, action: Action, cache: PermissionCache) -> AccessDecision:
    def verdict(allowed, reason, failed_level=None, plan_name=None):
        return AccessDecision(
            allowed=allowed,
            reason=reason,
            failed_level=failed_level,
            object_type=object_type,
            action=action,
            plan_name=plan_name,
        )

    # Overrides short-circuit the plan and profile tiers
    if is_super_admin(user.id, cache):
        return verdict(True, Reason.SUPER_ADMIN)

    grants = resolve_permissions(user.id, cache)
    if grants.is_organization_admin:
        return verdict(True, Reason.ORGANIZATION_ADMIN)

    plan = get_org_features(getattr(user, 'organization_id', None), cache)
    required = features_for(object_type)
    if required and not plan.has_any(required):
        return verdict(False, Reason.FEATURE_NOT_AVAILABLE, FailedLevel.PLAN, plan.plan_name)

    caps = grants.for_type(object_type)
    if caps is None:
        return verdict(False, Reason.NO_PERMISSION_SPECIFIED, FailedLevel.PROFILE, plan.plan_name)
    if not caps.allows(action):
        return verdict(False, Reason.PERMISSION_DENIED, FailedLevel.PROFILE, plan.plan_name)

    return verdict(True, Reason.PERMISSION_GRANTED, plan_name=plan.plan_name)


def decide(user, object_type, action, cache: Optional[PermissionCache] = None) -> AccessDecision:
    """
    Decide whether a user may perform an action on an object type.

    Args:
        user: User model (or any object exposing id and organization_id)
        object_type: ObjectType or its name (e.g. 'Property')
        action: Action or its name ('read', 'create', 'edit', 'delete', 'viewAll')
        cache: PermissionCache (defaults to the application's cache)

    Returns:
        AccessDecision

    Raises:
        InvalidRequestError: If the user is missing or the object type or
            action is unknown
    """
    object_type, action = _validate(user, object_type, action)

    try:
        if cache is None:
            cache = get_permission_cache()
        return _evaluate(user, object_type, action, cache)
    except Exception as e:
        logger.exception(
            f"Access resolution failed for user {user.id} {action.value} {object_type.value}: {e}"
        )
        _rollback()
        return AccessDecision(
            allowed=False,
            reason=Reason.RESOLUTION_FAILED,
            object_type=object_type,
            action=action,
        )


def decide_instance(user, object_type, object_id, action,
                    cache: Optional[PermissionCache] = None) -> AccessDecision:
    """
    Decide whether a user may perform an action on one specific record.

    The type-level decision is taken first; the record relation check can
    only turn an Allow into a Deny.

    Raises:
        InvalidRequestError: On a malformed query or a missing object_id
    """
    object_type, action = _validate(user, object_type, action)
    if object_id is None:
        raise InvalidRequestError("An object id is required for instance checks", field='objectId')

    type_decision = decide(user, object_type, action, cache)

    def view_all():
        return decide(user, object_type, Action.VIEW_ALL, cache).allowed

    try:
        return check_instance(user, object_type, object_id, action, type_decision, view_all)
    except Exception as e:
        logger.exception(
            f"Instance check failed for user {user.id} {action.value} {object_type.value} {object_id}: {e}"
        )
        _rollback()
        return AccessDecision(
            allowed=False,
            reason=Reason.RESOLUTION_FAILED,
            object_type=object_type,
            action=action,
            object_id=object_id,
        )


def check_access(user, object_type, action, object_id=None,
                 cache: Optional[PermissionCache] = None) -> AccessDecision:
    """Single entry point: instance check when object_id is given, type check otherwise."""
    if object_id is None:
        return decide(user, object_type, action, cache)
    return decide_instance(user, object_type, object_id, action, cache)


def can(user, object_type, action, object_id=None) -> bool:
    """Boolean shorthand for check_access()."""
    return check_access(user, object_type, action, object_id).allowed


# =============================================================================
# ACCESS SNAPSHOT
# =============================================================================

def get_access_snapshot(user, cache: Optional[PermissionCache] = None) -> dict:
    """
    Build the fully defaulted access payload for UI consumers.

    Every object type is present; missing data has already been replaced
    by the fail-closed defaults (freemium plan, empty permissions).
    """
    if user is None or getattr(user, 'id', None) is None:
        raise InvalidRequestError("An identified user is required", field='user')

    try:
        if cache is None:
            cache = get_permission_cache()
        grants = resolve_permissions(user.id, cache)
        super_admin = is_super_admin(user.id, cache)
    except Exception as e:
        logger.exception(f"Could not resolve permissions for user {user.id}: {e}")
        _rollback()
        grants, super_admin = ProfileGrants.empty(), False

    plan = get_org_features(getattr(user, 'organization_id', None), cache)

    objects = {}
    for object_type in ObjectType:
        caps = grants.for_type(object_type)
        required = features_for(object_type)
        objects[object_type.value] = {
            'featureEnabled': not required or plan.has_any(required),
            'permission': caps.to_dict() if caps else None,
            'allowedActions': [
                action.value for action in Action
                if decide(user, object_type, action, cache).allowed
            ],
        }

    return {
        'userId': user.id,
        'organizationId': getattr(user, 'organization_id', None),
        'planName': plan.plan_name,
        'planStatus': plan.status,
        'features': sorted(plan.features),
        'limits': plan.limits.to_dict(),
        'profileId': grants.profile_id,
        'profileName': grants.profile_name,
        'isOrganizationAdmin': grants.is_organization_admin,
        'isSuperAdmin': super_admin,
        'objects': objects,
    }
