"""
Navigation access.

Each navigation entry declares what it needs: a plan feature, an object
permission, or nothing (always visible). The plan is checked first so a
missing feature yields an upgrade prompt rather than an access-denied.
"""

from dataclasses import dataclass
from typing import Optional

from feature_flags import get_org_features

from .engine import decide
from .types import AccessDecision, Action, FailedLevel, ObjectType, Reason


@dataclass(frozen=True)
class NavigationItem:
    key: str
    label: str
    path: str
    feature_key: Optional[str] = None
    object_type: Optional[ObjectType] = None
    action: Action = Action.READ
    always_visible: bool = False

    def to_dict(self):
        return {
            'key': self.key,
            'label': self.label,
            'path': self.path,
            'featureKey': self.feature_key,
            'objectType': self.object_type.value if self.object_type else None,
            'action': self.action.value,
        }


NAVIGATION_ITEMS = (
    NavigationItem('dashboard', 'Dashboard', '/dashboard', always_visible=True),
    NavigationItem('properties', 'Properties', '/properties', 'properties_management', ObjectType.PROPERTY),
    NavigationItem('units', 'Units', '/units', 'units_management', ObjectType.UNIT),
    NavigationItem('tenants', 'Tenants', '/tenants', None, ObjectType.TENANT),
    NavigationItem('leases', 'Leases', '/leases', None, ObjectType.LEASE),
    NavigationItem('payments', 'Payments', '/payments', None, ObjectType.PAYMENT),
    NavigationItem('tasks', 'Tasks', '/tasks', None, ObjectType.TASK),
    NavigationItem('messages', 'Messages', '/messages', 'messaging', ObjectType.MESSAGE),
    NavigationItem('accounting', 'Accounting', '/accounting', 'accounting_sycoda_full', ObjectType.JOURNAL_ENTRY),
    NavigationItem('bank_sync', 'Bank sync', '/accounting/bank-sync', 'bank_sync'),
    NavigationItem('reports', 'Reports', '/reports', None, ObjectType.REPORT),
    NavigationItem('users', 'Users', '/settings/users', None, ObjectType.USER, Action.VIEW_ALL),
    NavigationItem('profiles', 'Profiles', '/settings/profiles', None, ObjectType.PROFILE),
    NavigationItem('settings', 'Settings', '/settings', None, ObjectType.ORGANIZATION),
)


def check_navigation_item(user, item: NavigationItem, cache=None) -> AccessDecision:
    """
    Decide whether a navigation entry is shown to a user.

    Returns:
        AccessDecision with reason always_visible, feature_not_available,
        object_permission_granted, object_permission_denied or
        no_permission_specified
    """
    if item.always_visible:
        return AccessDecision(allowed=True, reason=Reason.ALWAYS_VISIBLE)

    plan = get_org_features(getattr(user, 'organization_id', None), cache)
    if item.feature_key and not plan.has_feature(item.feature_key):
        return AccessDecision(
            allowed=False,
            reason=Reason.FEATURE_NOT_AVAILABLE,
            failed_level=FailedLevel.PLAN,
            plan_name=plan.plan_name,
        )

    if item.object_type is None:
        if item.feature_key:
            return AccessDecision(allowed=True, reason=Reason.PERMISSION_GRANTED, plan_name=plan.plan_name)
        # Nothing to verify against the profile
        return AccessDecision(
            allowed=False,
            reason=Reason.NO_PERMISSION_SPECIFIED,
            failed_level=FailedLevel.PROFILE,
            plan_name=plan.plan_name,
        )

    decision = decide(user, item.object_type, item.action, cache)
    if decision.allowed:
        return AccessDecision(
            allowed=True,
            reason=Reason.OBJECT_PERMISSION_GRANTED,
            object_type=item.object_type,
            action=item.action,
            plan_name=plan.plan_name,
        )
    if decision.reason is Reason.FEATURE_NOT_AVAILABLE:
        return decision
    return AccessDecision(
        allowed=False,
        reason=Reason.OBJECT_PERMISSION_DENIED,
        failed_level=decision.failed_level or FailedLevel.PROFILE,
        object_type=item.object_type,
        action=item.action,
        plan_name=plan.plan_name,
    )


def visible_navigation(user, items=NAVIGATION_ITEMS, cache=None) -> list:
    """Navigation entries the user may see, in registry order."""
    return [item for item in items if check_navigation_item(user, item, cache).allowed]
