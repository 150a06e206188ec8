# routes/profiles.py
"""
Profile administration routes.
Organization admins manage their own profiles; global profiles are
read-only outside the platform admin team.
"""

from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from forms import ObjectPermissionForm
from models import db, Profile
from services.security import (
    Action,
    Capabilities,
    ObjectType,
    InvalidRequestError,
    ProfileError,
    get_assignable_profiles,
    invalidate_profile,
    seed_global_profiles,
    set_object_permission,
    summarize_profile_access,
)
from services.tenant_service import (
    access_required,
    invalid_request_response,
    is_platform_admin,
    org_admin_required,
    platform_admin_required,
)

profiles_bp = Blueprint('profiles', __name__, url_prefix='/profiles')


def _serialize_profile(profile, include_permissions=False):
    data = {
        'id': profile.id,
        'name': profile.name,
        'description': profile.description,
        'isGlobal': profile.is_global,
        'isSystemProfile': profile.is_system_profile,
        'isActive': profile.is_active,
    }
    if include_permissions:
        data['permissions'] = [permission.to_dict() for permission in profile.permissions]
    return data


@profiles_bp.route('')
@login_required
@access_required(ObjectType.PROFILE, Action.READ)
def list_profiles():
    """Profiles assignable in the current organization."""
    profiles = get_assignable_profiles(current_user.organization_id)
    return jsonify({'success': True, 'profiles': [_serialize_profile(p) for p in profiles]})


@profiles_bp.route('/<int:profile_id>')
@login_required
@access_required(ObjectType.PROFILE, Action.READ, id_arg='profile_id')
def get_profile(profile_id):
    profile = db.session.get(Profile, profile_id)
    return jsonify({'success': True, 'profile': _serialize_profile(profile, include_permissions=True)})


@profiles_bp.route('/<int:profile_id>/permissions/<object_type>', methods=['PUT'])
@login_required
@org_admin_required
@access_required(ObjectType.PROFILE, Action.EDIT, id_arg='profile_id')
def update_permission(profile_id, object_type):
    """
    Replace one object permission row.

    Body: {"can_create": false, "can_read": true, "can_edit": true,
           "can_delete": false, "can_view_all": true}
    Missing flags are treated as false. The access level is derived.
    """
    form = ObjectPermissionForm()
    if not form.validate_on_submit():
        return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400

    profile = db.session.get(Profile, profile_id)
    caps = Capabilities(
        can_create=form.can_create.data,
        can_read=form.can_read.data,
        can_edit=form.can_edit.data,
        can_delete=form.can_delete.data,
        can_view_all=form.can_view_all.data,
    )
    try:
        row = set_object_permission(profile, object_type, caps, actor_id=current_user.id,
                                    allow_global=is_platform_admin())
    except InvalidRequestError as e:
        return invalid_request_response(e)
    except ProfileError as e:
        return jsonify({'success': False, 'error': str(e), 'reason': e.reason}), 400

    return jsonify({'success': True, 'permission': row.to_dict()})


@profiles_bp.route('/<int:profile_id>/summary')
@login_required
@access_required(ObjectType.PROFILE, Action.READ, id_arg='profile_id')
def profile_summary(profile_id):
    profile = db.session.get(Profile, profile_id)
    return jsonify({'success': True, 'summary': summarize_profile_access(profile).to_dict()})


@profiles_bp.route('/global/seed', methods=['POST'])
@login_required
@platform_admin_required
def reseed_global_profiles():
    """Restore the global profiles to their template permissions."""
    profiles = seed_global_profiles()
    for profile in profiles:
        invalidate_profile(profile.id)
    return jsonify({'success': True, 'profiles': [_serialize_profile(p, include_permissions=True) for p in profiles]})
