"""
Authorization Type Definitions

Closed enumerations for object types, actions, access levels and decision
reasons, plus the immutable values passed between the resolvers and the
decision engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from tier_config import PlanLimits

from .exceptions import InvalidRequestError


class ObjectType(str, Enum):
    """Business objects subject to permission checks."""
    PROPERTY = 'Property'
    UNIT = 'Unit'
    TENANT = 'Tenant'
    LEASE = 'Lease'
    PAYMENT = 'Payment'
    TASK = 'Task'
    MESSAGE = 'Message'
    JOURNAL_ENTRY = 'JournalEntry'
    USER = 'User'
    ORGANIZATION = 'Organization'
    PROFILE = 'Profile'
    REPORT = 'Report'
    ACTIVITY = 'Activity'


class Action(str, Enum):
    READ = 'read'
    CREATE = 'create'
    EDIT = 'edit'
    DELETE = 'delete'
    VIEW_ALL = 'viewAll'


class AccessLevel(str, Enum):
    """Label summarizing a permission row. Always derived, never set directly."""
    NONE = 'None'
    READ = 'Read'
    READ_WRITE = 'ReadWrite'
    ALL = 'All'

    @property
    def rank(self) -> int:
        return ACCESS_LEVEL_ORDER.index(self)


ACCESS_LEVEL_ORDER = (AccessLevel.NONE, AccessLevel.READ, AccessLevel.READ_WRITE, AccessLevel.ALL)


class Reason(str, Enum):
    """
    Stable reason vocabulary.

    UI consumers branch on these values: feature_not_available renders an
    upgrade prompt, the profile/object reasons render access denied.
    """
    PERMISSION_GRANTED = 'permission_granted'
    ORGANIZATION_ADMIN = 'organization_admin'
    SUPER_ADMIN = 'super_admin'
    FEATURE_NOT_AVAILABLE = 'feature_not_available'
    PERMISSION_DENIED = 'permission_denied'
    NO_PERMISSION_SPECIFIED = 'no_permission_specified'
    OBJECT_PERMISSION_GRANTED = 'object_permission_granted'
    OBJECT_PERMISSION_DENIED = 'object_permission_denied'
    OBJECT_NOT_FOUND = 'object_not_found'
    ALWAYS_VISIBLE = 'always_visible'
    RESOLUTION_FAILED = 'resolution_failed'
    INVALID_REQUEST = 'invalid_request'


class FailedLevel(str, Enum):
    """Which tier of the check refused access."""
    PLAN = 'plan'
    PROFILE = 'profile'
    OBJECT = 'object'


# =============================================================================
# OBJECT TYPE -> PLAN FEATURE
# =============================================================================

# Any one of the listed keys enables the object type. An empty tuple means
# the object type is not plan-gated.
OBJECT_FEATURES: Dict[ObjectType, Tuple[str, ...]] = {
    ObjectType.PROPERTY: ('properties_management',),
    ObjectType.UNIT: ('units_management',),
    ObjectType.TENANT: ('tenants_full', 'tenants_basic'),
    ObjectType.LEASE: ('leases_full', 'leases_basic'),
    ObjectType.PAYMENT: ('payments_all_methods', 'payments_manual_entry'),
    ObjectType.TASK: ('tasks_full', 'basic_tasks'),
    ObjectType.MESSAGE: ('messaging',),
    ObjectType.JOURNAL_ENTRY: ('accounting_sycoda_full',),
    ObjectType.REPORT: ('reports_basic', 'reports_advanced'),
    ObjectType.USER: (),
    ObjectType.ORGANIZATION: (),
    ObjectType.PROFILE: (),
    ObjectType.ACTIVITY: (),
}

_unmapped = set(ObjectType) - set(OBJECT_FEATURES)
if _unmapped:
    raise RuntimeError(f"Object types without a feature mapping: {sorted(t.value for t in _unmapped)}")


def features_for(object_type: ObjectType) -> Tuple[str, ...]:
    return OBJECT_FEATURES[object_type]


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Capabilities:
    """The four capability booleans of a permission row plus viewAll."""
    can_create: bool = False
    can_read: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_all: bool = False

    @classmethod
    def from_row(cls, row) -> 'Capabilities':
        return cls(
            can_create=bool(row.can_create),
            can_read=bool(row.can_read),
            can_edit=bool(row.can_edit),
            can_delete=bool(row.can_delete),
            can_view_all=bool(row.can_view_all),
        )

    def allows(self, action: Action) -> bool:
        if action is Action.READ:
            return self.can_read
        if action is Action.VIEW_ALL:
            return self.can_read and self.can_view_all
        if action is Action.CREATE:
            return self.can_create
        if action is Action.EDIT:
            return self.can_edit
        if action is Action.DELETE:
            return self.can_delete
        raise InvalidRequestError(f"Unknown action: {action!r}", field='action', value=action)

    @property
    def access_level(self) -> AccessLevel:
        return derive_access_level(self)

    def to_dict(self):
        return {
            'accessLevel': self.access_level.value,
            'canCreate': self.can_create,
            'canRead': self.can_read,
            'canEdit': self.can_edit,
            'canDelete': self.can_delete,
            'canViewAll': self.can_view_all,
        }


def derive_access_level(caps: Capabilities) -> AccessLevel:
    """
    Project the booleans onto an access level.

    All four capabilities -> All; any write capability -> ReadWrite;
    read only -> Read; otherwise None.
    """
    if caps.can_create and caps.can_read and caps.can_edit and caps.can_delete:
        return AccessLevel.ALL
    if caps.can_create or caps.can_edit or caps.can_delete:
        return AccessLevel.READ_WRITE
    if caps.can_read:
        return AccessLevel.READ
    return AccessLevel.NONE


def has_access_level_or_higher(level: AccessLevel, required: AccessLevel) -> bool:
    return AccessLevel(level).rank >= AccessLevel(required).rank


def most_permissive(levels: Iterable[AccessLevel]) -> AccessLevel:
    return max((AccessLevel(level) for level in levels), key=lambda level: level.rank,
               default=AccessLevel.NONE)


@dataclass(frozen=True)
class ProfileGrants:
    """
    Snapshot of a user's profile permissions.

    profile_id is None when the user has no profile; permissions is then
    empty and every object check denies.
    """
    profile_id: Optional[int] = None
    profile_name: Optional[str] = None
    permissions: Dict[ObjectType, Capabilities] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> 'ProfileGrants':
        return cls()

    @property
    def has_profile(self) -> bool:
        return self.profile_id is not None

    def for_type(self, object_type: ObjectType) -> Optional[Capabilities]:
        return self.permissions.get(object_type)

    @property
    def is_organization_admin(self) -> bool:
        org_caps = self.for_type(ObjectType.ORGANIZATION)
        return bool(org_caps and org_caps.can_edit)


@dataclass(frozen=True)
class PlanFeatures:
    """
    An organization's effective plan.

    is_fallback is True when the freemium plan was substituted because the
    subscription was missing, inactive or could not be read.
    """
    plan_name: str
    features: frozenset
    limits: PlanLimits
    status: Optional[str] = None
    is_fallback: bool = False

    def has_feature(self, feature_key: str) -> bool:
        return feature_key in self.features

    def has_any(self, feature_keys: Iterable[str]) -> bool:
        return any(key in self.features for key in feature_keys)

    def to_dict(self):
        return {
            'planName': self.plan_name,
            'status': self.status,
            'features': sorted(self.features),
            'limits': self.limits.to_dict(),
            'isFallback': self.is_fallback,
        }


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of an access check. Truthy when access is allowed."""
    allowed: bool
    reason: Reason
    failed_level: Optional[FailedLevel] = None
    object_type: Optional[ObjectType] = None
    action: Optional[Action] = None
    object_id: Optional[int] = None
    plan_name: Optional[str] = None

    def __bool__(self):
        return self.allowed

    @property
    def needs_upgrade(self) -> bool:
        return self.reason is Reason.FEATURE_NOT_AVAILABLE

    def to_dict(self):
        return {
            'allowed': self.allowed,
            'reason': self.reason.value,
            'failedLevel': self.failed_level.value if self.failed_level else None,
            'objectType': self.object_type.value if self.object_type else None,
            'action': self.action.value if self.action else None,
            'objectId': self.object_id,
            'planName': self.plan_name,
        }


# =============================================================================
# INPUT PARSING
# =============================================================================

def parse_object_type(value) -> ObjectType:
    """
    Coerce a caller-supplied object type.

    Raises:
        InvalidRequestError: If the value is not a known object type
    """
    if isinstance(value, ObjectType):
        return value
    if isinstance(value, str):
        for object_type in ObjectType:
            if value.lower() in (object_type.value.lower(), object_type.name.lower()):
                return object_type
    raise InvalidRequestError(f"Unknown object type: {value!r}", field='objectType', value=value)


def parse_action(value) -> Action:
    """
    Coerce a caller-supplied action.

    Raises:
        InvalidRequestError: If the value is not a known action
    """
    if isinstance(value, Action):
        return value
    if isinstance(value, str):
        for action in Action:
            if value.lower() in (action.value.lower(), action.name.lower()):
                return action
    raise InvalidRequestError(f"Unknown action: {value!r}", field='action', value=value)
