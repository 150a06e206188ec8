"""
Object Permission Resolver

Resolves a user's assigned profile to an immutable ProfileGrants snapshot,
and answers the super-admin flag lookup. Results are cached in the
application's PermissionCache for at most its TTL; permission writes clear
the affected users explicitly.
"""

import logging
from typing import Optional

from services.cache_helpers import PermissionCache, get_permission_cache, user_key

from .types import Capabilities, ObjectType, ProfileGrants

logger = logging.getLogger(__name__)


def load_profile_grants(user_id: int) -> ProfileGrants:
    """
    Read a user's profile permissions from the store.

    Missing user, missing profile, inactive profile or a profile that belongs
    to another organization all resolve to empty grants.
    """
    from models import db, User, Profile, ObjectPermission

    user = db.session.get(User, user_id)
    if user is None or user.profile_id is None:
        return ProfileGrants.empty()

    profile = db.session.get(Profile, user.profile_id)
    if profile is None or not profile.is_active:
        logger.warning(f"User {user_id} references missing or inactive profile {user.profile_id}")
        return ProfileGrants.empty()

    if not profile.is_global and profile.organization_id != user.organization_id:
        logger.warning(
            f"User {user_id} (org {user.organization_id}) holds profile {profile.id} "
            f"of org {profile.organization_id}, ignoring it"
        )
        return ProfileGrants.empty()

    permissions = {}
    for row in ObjectPermission.query.filter_by(profile_id=profile.id).all():
        try:
            object_type = ObjectType(row.object_type)
        except ValueError:
            logger.warning(f"Ignoring permission row {row.id} with unknown object type {row.object_type!r}")
            continue
        permissions[object_type] = Capabilities.from_row(row)

    return ProfileGrants(profile_id=profile.id, profile_name=profile.name, permissions=permissions)


def resolve_permissions(user_id: int, cache: Optional[PermissionCache] = None) -> ProfileGrants:
    """
    Get a user's profile grants, cached.

    Store errors propagate to the caller; the decision engine turns them into
    a Deny.
    """
    if cache is None:
        cache = get_permission_cache()
    return cache.get_or_load(user_key('grants', user_id), lambda: load_profile_grants(user_id))


def load_super_admin(user_id: int) -> bool:
    from models import db, User

    user = db.session.get(User, user_id)
    return bool(user and user.is_active and user.is_super_admin)


def is_super_admin(user_id: int, cache: Optional[PermissionCache] = None) -> bool:
    """Check the platform super-admin flag, cached."""
    if cache is None:
        cache = get_permission_cache()
    return cache.get_or_load(user_key('super_admin', user_id), lambda: load_super_admin(user_id))


# =============================================================================
# INVALIDATION
# =============================================================================

def invalidate_user(user_id: int, cache: Optional[PermissionCache] = None):
    """Forget everything cached for a user (profile reassignment, flag change)."""
    from services.cache_helpers import clear_user_cache

    clear_user_cache(user_id, cache)


def invalidate_profile(profile_id: int, cache: Optional[PermissionCache] = None):
    """Forget cached grants of every user holding a profile (permission edit)."""
    from models import User

    if cache is None:
        cache = get_permission_cache()
    user_ids = [user_id for (user_id,) in User.query.with_entities(User.id).filter_by(profile_id=profile_id)]
    for user_id in user_ids:
        invalidate_user(user_id, cache)
    return len(user_ids)
