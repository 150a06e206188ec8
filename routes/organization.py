# routes/organization.py
"""
Organization management routes.
Setup, usage, member invitations and profile assignment.
"""

from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user

from forms import OrganizationSetupForm, InviteUserForm, AssignProfileForm
from feature_flags import get_org_features
from models import db, User, Profile, UserInvitation
from services.security import (
    Action,
    ObjectType,
    InvalidRequestError,
    LimitExceededError,
    ProfileError,
    assign_profile,
    get_current_usage,
    get_usage_warnings,
)
from services.tenant_service import (
    access_required,
    create_organization,
    invite_user,
    accept_invitation,
    org_query,
    invalid_request_response,
    limit_exceeded_response,
    org_admin_required,
    org_can_add_user,
)

org_bp = Blueprint('org', __name__, url_prefix='/org')


def _form_error(form):
    return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400


def _profile_error(error: ProfileError):
    return jsonify({'success': False, 'error': str(error), 'reason': error.reason}), 400


# =============================================================================
# ORGANIZATION SETUP
# =============================================================================

@org_bp.route('/setup', methods=['POST'])
@login_required
def setup():
    """Create an organization with the current user as its administrator."""
    form = OrganizationSetupForm(plan_name=current_app.config['DEFAULT_PLAN_NAME'])
    if not form.validate_on_submit():
        return _form_error(form)

    try:
        org = create_organization(form.name.data.strip(), current_user, form.plan_name.data)
    except InvalidRequestError as e:
        return invalid_request_response(e)
    except ProfileError as e:
        return _profile_error(e)

    return jsonify({
        'success': True,
        'organization': {'id': org.id, 'name': org.name, 'slug': org.slug},
        'plan': get_org_features(org.id).to_dict(),
    }), 201


@org_bp.route('/usage')
@login_required
@access_required(ObjectType.ORGANIZATION, Action.READ)
def usage():
    """Current usage against plan limits, with near-limit warnings."""
    org_id = current_user.organization_id
    plan = get_org_features(org_id)
    return jsonify({
        'success': True,
        'planName': plan.plan_name,
        'usage': get_current_usage(org_id).to_dict(),
        'limits': plan.limits.to_dict(),
        'warnings': get_usage_warnings(org_id),
    })


# =============================================================================
# MEMBER MANAGEMENT
# =============================================================================

@org_bp.route('/members')
@login_required
@access_required(ObjectType.USER, Action.VIEW_ALL)
def members():
    """List organization members with their profiles."""
    users = org_query(User).order_by(User.first_name, User.last_name).all()
    can_invite, limit_message = org_can_add_user()
    return jsonify({
        'success': True,
        'canInvite': can_invite,
        'inviteLimitMessage': limit_message or None,
        'members': [{
            'id': user.id,
            'email': user.email,
            'name': user.full_name,
            'isActive': user.is_active,
            'profileId': user.profile_id,
            'profileName': user.profile.name if user.profile else None,
        } for user in users],
    })


@org_bp.route('/members/invite', methods=['POST'])
@login_required
@access_required(ObjectType.USER, Action.CREATE)
def invite_member():
    """Invite a new member. Pending invitations count against the user limit."""
    form = InviteUserForm()
    if not form.validate_on_submit():
        return _form_error(form)

    try:
        invitation = invite_user(
            current_user.organization_id,
            form.email.data,
            profile_id=form.profile_id.data,
            invited_by=current_user,
        )
    except LimitExceededError as e:
        return limit_exceeded_response(e)
    except InvalidRequestError as e:
        return invalid_request_response(e)
    except ProfileError as e:
        return _profile_error(e)

    return jsonify({
        'success': True,
        'invitation': {
            'id': invitation.id,
            'email': invitation.email,
            'profileId': invitation.profile_id,
            'expiresAt': invitation.expires_at.isoformat(),
        },
    }), 201


@org_bp.route('/invitations/<int:invitation_id>/revoke', methods=['POST'])
@login_required
@access_required(ObjectType.USER, Action.CREATE)
def revoke_invitation(invitation_id):
    """Revoke a pending invitation, releasing its seat."""
    invitation = UserInvitation.pending_for_org(current_user.organization_id) \
        .filter_by(id=invitation_id).first()
    if not invitation:
        return jsonify({'success': False, 'error': 'Invitation not found.'}), 404

    invitation.status = UserInvitation.STATUS_REVOKED
    db.session.commit()
    return jsonify({'success': True})


@org_bp.route('/invitations/<token>/accept', methods=['POST'])
@login_required
def accept(token):
    """Join the inviting organization."""
    try:
        invitation = accept_invitation(token, current_user)
    except InvalidRequestError as e:
        return invalid_request_response(e)
    except ProfileError as e:
        return _profile_error(e)

    return jsonify({'success': True, 'organizationId': invitation.organization_id})


@org_bp.route('/members/<int:user_id>/profile', methods=['POST'])
@login_required
@org_admin_required
@access_required(ObjectType.USER, Action.EDIT, id_arg='user_id')
def change_member_profile(user_id):
    """Assign a profile to a member (organization or global profile). Organization admins only."""
    form = AssignProfileForm()
    if not form.validate_on_submit():
        return _form_error(form)

    user = db.session.get(User, user_id)
    profile = db.session.get(Profile, form.profile_id.data)
    try:
        assign_profile(user, profile, actor_id=current_user.id)
    except ProfileError as e:
        return _profile_error(e)

    current_app.logger.info(f"User {current_user.id} assigned profile {profile.id} to user {user.id}")
    return jsonify({'success': True, 'userId': user.id, 'profileId': profile.id, 'profileName': profile.name})
