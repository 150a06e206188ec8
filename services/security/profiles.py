"""
Profile Administration

Writes to profiles and their permission rows. Every write commits as one
transaction and then clears the cached grants of the affected users so the
next decision observes it.

An organization can never lose its last administrator (a user whose profile
grants canEdit on Organization) through these functions.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import ProfileError
from .resolver import invalidate_profile, invalidate_user
from .types import (
    AccessLevel,
    Capabilities,
    ObjectType,
    most_permissive,
    parse_object_type,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DEFAULT PROFILE TEMPLATES
# =============================================================================

FULL = Capabilities(can_create=True, can_read=True, can_edit=True, can_delete=True, can_view_all=True)
READ_WRITE_ALL = Capabilities(can_create=True, can_read=True, can_edit=True, can_delete=False, can_view_all=True)
READ_ALL = Capabilities(can_read=True, can_view_all=True)
READ_OWN = Capabilities(can_read=True)
NO_ACCESS = Capabilities()

BUSINESS_OBJECTS = (
    ObjectType.PROPERTY, ObjectType.UNIT, ObjectType.TENANT, ObjectType.LEASE,
    ObjectType.PAYMENT, ObjectType.TASK, ObjectType.MESSAGE, ObjectType.JOURNAL_ENTRY,
)

OWNER_PROFILE = 'Owner'
SYSTEM_ADMIN_PROFILE = 'System Administrator'

DEFAULT_PROFILE_TEMPLATES = [
    {
        'name': OWNER_PROFILE,
        'description': 'Full access, administers the organization',
        'permissions': {
            **{object_type: FULL for object_type in BUSINESS_OBJECTS},
            ObjectType.USER: FULL,
            ObjectType.ORGANIZATION: Capabilities(can_read=True, can_edit=True, can_view_all=True),
            ObjectType.PROFILE: FULL,
            ObjectType.REPORT: READ_ALL,
            ObjectType.ACTIVITY: READ_ALL,
        },
    },
    {
        'name': 'Accountant',
        'description': 'Financial data: payments and journal entries',
        'permissions': {
            ObjectType.PROPERTY: READ_ALL,
            ObjectType.UNIT: READ_ALL,
            ObjectType.TENANT: READ_ALL,
            ObjectType.LEASE: READ_ALL,
            ObjectType.PAYMENT: FULL,
            ObjectType.TASK: READ_WRITE_ALL,
            ObjectType.MESSAGE: Capabilities(can_create=True, can_read=True, can_view_all=True),
            ObjectType.JOURNAL_ENTRY: FULL,
            ObjectType.USER: NO_ACCESS,
            ObjectType.ORGANIZATION: READ_OWN,
            ObjectType.PROFILE: NO_ACCESS,
            ObjectType.REPORT: READ_ALL,
            ObjectType.ACTIVITY: READ_OWN,
        },
    },
    {
        'name': 'Agent',
        'description': 'Day-to-day operations without deletion',
        'permissions': {
            ObjectType.PROPERTY: READ_WRITE_ALL,
            ObjectType.UNIT: READ_WRITE_ALL,
            ObjectType.TENANT: READ_WRITE_ALL,
            ObjectType.LEASE: READ_WRITE_ALL,
            ObjectType.PAYMENT: READ_WRITE_ALL,
            ObjectType.TASK: READ_WRITE_ALL,
            ObjectType.MESSAGE: FULL,
            ObjectType.JOURNAL_ENTRY: READ_ALL,
            ObjectType.USER: NO_ACCESS,
            ObjectType.ORGANIZATION: READ_OWN,
            ObjectType.PROFILE: NO_ACCESS,
            ObjectType.REPORT: READ_OWN,
            ObjectType.ACTIVITY: READ_OWN,
        },
    },
    {
        'name': 'Viewer',
        'description': 'Read-only access',
        'permissions': {
            **{object_type: READ_ALL for object_type in BUSINESS_OBJECTS},
            ObjectType.USER: NO_ACCESS,
            ObjectType.ORGANIZATION: READ_OWN,
            ObjectType.PROFILE: NO_ACCESS,
            ObjectType.REPORT: READ_OWN,
            ObjectType.ACTIVITY: NO_ACCESS,
        },
    },
]

GLOBAL_PROFILE_TEMPLATES = [
    {
        'name': SYSTEM_ADMIN_PROFILE,
        'description': 'Platform-wide administrator',
        'permissions': {object_type: FULL for object_type in ObjectType},
    },
]


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _apply(row, caps: Capabilities):
    row.can_create = caps.can_create
    row.can_read = caps.can_read
    row.can_edit = caps.can_edit
    row.can_delete = caps.can_delete
    row.can_view_all = caps.can_view_all


def _upsert_permission(profile, object_type: ObjectType, caps: Capabilities):
    """Create or edit a permission row in the session. access_level is derived on flush."""
    from models import db, ObjectPermission

    row = ObjectPermission.query.filter_by(profile_id=profile.id, object_type=object_type.value).first()
    if row is None:
        row = ObjectPermission(profile_id=profile.id, object_type=object_type.value)
        db.session.add(row)
    _apply(row, caps)
    return row


def _commit():
    from models import db

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def is_admin_profile(profile) -> bool:
    """True when the profile is active and grants canEdit on Organization."""
    if profile is None or not profile.is_active:
        return False
    row = profile.get_permission(ObjectType.ORGANIZATION.value)
    return bool(row and row.can_edit)


def org_admin_user_ids(org_id: int) -> List[int]:
    """Active users of an organization whose profile grants canEdit on Organization."""
    from models import db, ObjectPermission, Profile, User

    rows = (
        db.session.query(User.id)
        .join(Profile, User.profile_id == Profile.id)
        .join(ObjectPermission, ObjectPermission.profile_id == Profile.id)
        .filter(
            User.organization_id == org_id,
            User.is_active.is_(True),
            Profile.is_active.is_(True),
            ObjectPermission.object_type == ObjectType.ORGANIZATION.value,
            ObjectPermission.can_edit.is_(True),
        )
        .all()
    )
    return [user_id for (user_id,) in rows]


def validate_last_admin(org_id: int, losing_user_ids: List[int]):
    """
    Prevent a change that would leave an organization without an administrator.

    Args:
        org_id: Organization being modified
        losing_user_ids: Users who would stop being administrators

    Raises:
        ProfileError: If no administrator would remain
    """
    if org_id is None or not losing_user_ids:
        return
    remaining = set(org_admin_user_ids(org_id)) - set(losing_user_ids)
    if not remaining:
        raise ProfileError("Cannot remove the last organization administrator. Promote someone else first.")


def validate_admin_grant(actor_id: Optional[int], org_id: Optional[int]):
    """
    Only administrators may hand out administrator rights.

    Raises:
        ProfileError: If the actor is neither a super admin nor an
            administrator of the organization
    """
    from models import db, User

    if actor_id is None:
        return
    actor = db.session.get(User, actor_id)
    if actor is not None and actor.is_super_admin:
        return
    if actor is None or actor.organization_id != org_id or not is_admin_profile(actor.profile):
        raise ProfileError("Only an organization administrator can grant administrator access.")


# =============================================================================
# PERMISSION WRITES
# =============================================================================

def update_profile_permissions(profile, changes: Dict, actor_id: Optional[int] = None,
                               allow_global: bool = False) -> list:
    """
    Edit several permission rows of a profile in one transaction.

    Args:
        profile: Profile to edit
        changes: {object type: Capabilities}
        actor_id: User making the change (audited; must be an administrator to
                  grant Organization edit). None for system writes.
        allow_global: Permit editing a global profile (platform admins only)

    Returns:
        List of ObjectPermission rows

    Raises:
        ProfileError: If the profile is global and allow_global is False, the
            actor may not grant administrator access, or the change would
            remove the organization's last administrator
        InvalidRequestError: If an object type is unknown
    """
    from services.audit_service import log_permission_updated

    if profile.is_global and not allow_global:
        raise ProfileError("Global profiles cannot be modified by an organization.")

    parsed = {parse_object_type(object_type): caps for object_type, caps in changes.items()}

    org_caps = parsed.get(ObjectType.ORGANIZATION)
    if org_caps is not None and org_caps.can_edit and not is_admin_profile(profile):
        validate_admin_grant(actor_id, profile.organization_id)
    if org_caps is not None and not org_caps.can_edit and is_admin_profile(profile):
        losing = [user.id for user in profile.users if user.is_active]
        validate_last_admin(profile.organization_id, losing)

    rows = []
    for object_type, caps in parsed.items():
        rows.append(_upsert_permission(profile, object_type, caps))
        log_permission_updated(profile, object_type.value, caps.to_dict(), actor_id=actor_id)
    _commit()

    invalidate_profile(profile.id)
    logger.info(f"Updated {len(rows)} permission rows on profile {profile.id}")
    return rows


def set_object_permission(profile, object_type, caps: Capabilities, actor_id: Optional[int] = None,
                          allow_global: bool = False):
    """Edit a single permission row. See update_profile_permissions()."""
    return update_profile_permissions(profile, {object_type: caps}, actor_id, allow_global)[0]


def assign_profile(user, profile, actor_id: Optional[int] = None):
    """
    Reassign a user's profile.

    A single-column update, so the user never holds two profiles at once.

    Raises:
        ProfileError: If the profile is inactive or belongs to another
            organization, if a non-administrator actor hands out an
            administrator profile, or if the user is the last administrator
    """
    from services.audit_service import log_profile_assigned

    if profile is None or not profile.is_active:
        raise ProfileError("Profile not found or inactive.")
    if not profile.is_global and profile.organization_id != user.organization_id:
        raise ProfileError("Profile belongs to another organization.")

    if is_admin_profile(profile) and not is_admin_profile(user.profile):
        validate_admin_grant(actor_id, user.organization_id)
    if is_admin_profile(user.profile) and not is_admin_profile(profile):
        validate_last_admin(user.organization_id, [user.id])

    old_profile_id = user.profile_id
    if old_profile_id == profile.id:
        return user

    user.profile_id = profile.id
    log_profile_assigned(user, old_profile_id, profile, actor_id=actor_id)
    _commit()

    invalidate_user(user.id)
    logger.info(f"User {user.id} moved from profile {old_profile_id} to {profile.id}")
    return user


# =============================================================================
# SETUP
# =============================================================================

def _create_from_templates(org_id: Optional[int], templates: list) -> list:
    from models import db, Profile

    profiles = []
    for template in templates:
        profile = Profile.query.filter_by(organization_id=org_id, name=template['name']).first()
        if profile is None:
            profile = Profile(
                organization_id=org_id,
                name=template['name'],
                description=template['description'],
                is_system_profile=True,
            )
            db.session.add(profile)
            db.session.flush()  # Get profile.id

        for object_type, caps in template['permissions'].items():
            _upsert_permission(profile, object_type, caps)
        profiles.append(profile)
    return profiles


def create_default_profiles(org_id: int, commit: bool = True) -> list:
    """
    Create the default profiles for a new organization.
    Idempotent - existing profiles get their template permissions back.

    Returns:
        List of Profile objects (Owner, Accountant, Agent, Viewer)
    """
    profiles = _create_from_templates(org_id, DEFAULT_PROFILE_TEMPLATES)
    if commit:
        _commit()
    return profiles


def seed_global_profiles() -> list:
    """Create the global profiles shared by every organization."""
    profiles = _create_from_templates(None, GLOBAL_PROFILE_TEMPLATES)
    _commit()
    return profiles


def get_assignable_profiles(org_id: int) -> list:
    """Organization profiles plus global profiles."""
    from models import Profile

    return Profile.query.filter(
        ((Profile.organization_id == org_id) | (Profile.organization_id.is_(None))),
        Profile.is_active.is_(True)
    ).order_by(Profile.organization_id.is_(None), Profile.name).all()


# =============================================================================
# ACCESS SUMMARY
# =============================================================================

@dataclass(frozen=True)
class ProfileAccessSummary:
    profile_id: int
    profile_name: str
    overall_access_level: AccessLevel
    object_access_levels: Dict[str, AccessLevel] = field(default_factory=dict)
    can_create_any: bool = False
    can_edit_any: bool = False
    can_delete_any: bool = False
    can_view_all_any: bool = False
    total_objects: int = 0
    accessible_objects: int = 0

    def to_dict(self):
        return {
            'profileId': self.profile_id,
            'profileName': self.profile_name,
            'overallAccessLevel': self.overall_access_level.value,
            'objectAccessLevels': {k: v.value for k, v in self.object_access_levels.items()},
            'canCreateAny': self.can_create_any,
            'canEditAny': self.can_edit_any,
            'canDeleteAny': self.can_delete_any,
            'canViewAllAny': self.can_view_all_any,
            'totalObjects': self.total_objects,
            'accessibleObjects': self.accessible_objects,
        }


def summarize_profile_access(profile) -> ProfileAccessSummary:
    """Most permissive level plus aggregate capabilities of a profile."""
    rows = list(profile.permissions)
    levels = {row.object_type: AccessLevel(row.access_level) for row in rows}
    return ProfileAccessSummary(
        profile_id=profile.id,
        profile_name=profile.name,
        overall_access_level=most_permissive(levels.values()),
        object_access_levels=levels,
        can_create_any=any(row.can_create for row in rows),
        can_edit_any=any(row.can_edit for row in rows),
        can_delete_any=any(row.can_delete for row in rows),
        can_view_all_any=any(row.can_view_all for row in rows),
        total_objects=len(rows),
        accessible_objects=sum(1 for row in rows if row.can_read),
    )
