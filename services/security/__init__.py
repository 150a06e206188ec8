"""
Layered Authorization

Decides whether a user may perform an action on a business object.
Three tiers are combined: the organization's plan (Feature Gate), the
user's profile (Object Permission Resolver) and, for a specific record,
the record relation checks. Organization admins and super-admins
short-circuit the plan and profile tiers.

Usage:
    from services.security import decide, decide_instance, ObjectType, Action

    decision = decide(current_user, ObjectType.PROPERTY, Action.CREATE)
    if not decision:
        return jsonify(decision.to_dict()), 403

    decision = decide_instance(current_user, 'Task', task_id, 'edit')
"""

from .types import (
    ObjectType,
    Action,
    AccessLevel,
    Reason,
    FailedLevel,
    Capabilities,
    ProfileGrants,
    PlanFeatures,
    AccessDecision,
    OBJECT_FEATURES,
    derive_access_level,
    has_access_level_or_higher,
    parse_object_type,
    parse_action,
)

from .exceptions import (
    SecurityError,
    InvalidRequestError,
    LimitExceededError,
    PlanChangeError,
    ProfileError,
)

from .resolver import (
    resolve_permissions,
    is_super_admin,
    invalidate_user,
    invalidate_profile,
)

from .engine import (
    decide,
    decide_instance,
    check_access,
    can,
    get_access_snapshot,
)

from .usage_guard import (
    UsageCounts,
    PlanChangeValidation,
    get_current_usage,
    find_limit_violations,
    validate_plan_change,
    change_plan,
    check_can_add,
    assert_can_add,
    get_usage_warnings,
)

from .profiles import (
    assign_profile,
    set_object_permission,
    update_profile_permissions,
    create_default_profiles,
    seed_global_profiles,
    get_assignable_profiles,
    summarize_profile_access,
)

from .navigation import (
    NavigationItem,
    NAVIGATION_ITEMS,
    check_navigation_item,
    visible_navigation,
)

__all__ = [
    # Types
    'ObjectType',
    'Action',
    'AccessLevel',
    'Reason',
    'FailedLevel',
    'Capabilities',
    'ProfileGrants',
    'PlanFeatures',
    'AccessDecision',
    'OBJECT_FEATURES',
    'derive_access_level',
    'has_access_level_or_higher',
    'parse_object_type',
    'parse_action',
    # Exceptions
    'SecurityError',
    'InvalidRequestError',
    'LimitExceededError',
    'PlanChangeError',
    'ProfileError',
    # Resolver
    'resolve_permissions',
    'is_super_admin',
    'invalidate_user',
    'invalidate_profile',
    # Engine
    'decide',
    'decide_instance',
    'check_access',
    'can',
    'get_access_snapshot',
    # Usage guard
    'UsageCounts',
    'PlanChangeValidation',
    'get_current_usage',
    'find_limit_violations',
    'validate_plan_change',
    'change_plan',
    'check_can_add',
    'assert_can_add',
    'get_usage_warnings',
    # Profiles
    'assign_profile',
    'set_object_permission',
    'update_profile_permissions',
    'create_default_profiles',
    'seed_global_profiles',
    'get_assignable_profiles',
    'summarize_profile_access',
    # Navigation
    'NavigationItem',
    'NAVIGATION_ITEMS',
    'check_navigation_item',
    'visible_navigation',
]
