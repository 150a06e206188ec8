# services/tenant_service.py
"""
Tenant isolation helpers and route guards for multi-tenant SaaS.
ALWAYS use org_query() for tenant-scoped models.
Route guards ask the authorization engine; they never re-derive its rules.
"""

from datetime import datetime, timedelta
from functools import wraps

from flask import current_app, jsonify
from flask_login import current_user

from services.security import (
    Action,
    ObjectType,
    Reason,
    InvalidRequestError,
    LimitExceededError,
    ProfileError,
    assert_can_add,
    check_can_add,
    create_default_profiles,
    decide,
    decide_instance,
    invalidate_user,
    is_super_admin,
    parse_action,
    parse_object_type,
)
from services.security.profiles import OWNER_PROFILE, is_admin_profile, validate_admin_grant
from services.security.usage_guard import RESOURCE_USERS


# =============================================================================
# QUERY HELPERS
# =============================================================================

def org_query(model):
    """
    Return query filtered to current user's organization.
    ALWAYS use this for tenant-scoped models instead of Model.query.

    Example:
        properties = org_query(Property).order_by(Property.name).all()

    Args:
        model: SQLAlchemy model class with organization_id column

    Returns:
        Query object filtered to current user's organization

    Raises:
        RuntimeError: If called without authenticated user
    """
    if not current_user.is_authenticated:
        raise RuntimeError("org_query() requires authenticated user")

    return model.query.filter_by(organization_id=current_user.organization_id)


# =============================================================================
# PERMISSION CHECKS
# =============================================================================

def is_platform_admin():
    """Check if the current user is a platform super admin."""
    if not current_user.is_authenticated:
        return False
    return is_super_admin(current_user.id)


def org_can_add_user() -> tuple[bool, str]:
    """
    Check if org can add another user (active members + pending invitations).

    Returns:
        Tuple of (allowed: bool, message: str)
    """
    return check_can_add(current_user.organization_id, RESOURCE_USERS)


# =============================================================================
# RESPONSES
# =============================================================================

def access_denied_response(decision):
    """
    JSON response for a denied decision.
    Plan denials carry an upgrade message, profile/object denials a permission message.
    """
    if decision.reason is Reason.OBJECT_NOT_FOUND:
        return jsonify({'success': False, 'error': 'Not found.', **decision.to_dict()}), 404

    if decision.needs_upgrade:
        message = 'This feature requires a subscription upgrade.'
    else:
        message = 'You do not have permission to perform this action.'
    return jsonify({'success': False, 'error': message, **decision.to_dict()}), 403


def invalid_request_response(error: InvalidRequestError):
    return jsonify({
        'success': False,
        'error': str(error),
        'reason': error.reason,
        'field': error.field,
    }), 400


def limit_exceeded_response(error: LimitExceededError):
    return jsonify({
        'success': False,
        'error': str(error),
        'reason': error.reason,
        'resource': error.resource,
        'current': error.current,
        'limit': error.limit,
    }), 403


# =============================================================================
# DECORATORS
# =============================================================================

def _unauthenticated():
    return jsonify({'success': False, 'error': 'Authentication required.'}), 401


def access_required(object_type, action, id_arg: str = None):
    """
    Decorator to require an object permission for a route.

    With id_arg, the named URL argument is the record id and the record
    relation checks apply as well.

    Usage:
        @access_required(ObjectType.TASK, Action.EDIT, id_arg='task_id')
        def edit_task(task_id):
            ...
    """
    object_type = parse_object_type(object_type)
    action = parse_action(action)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return _unauthenticated()

            if id_arg is not None:
                decision = decide_instance(current_user, object_type, kwargs.get(id_arg), action)
            else:
                decision = decide(current_user, object_type, action)

            if not decision:
                return access_denied_response(decision)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def org_admin_required(f):
    """Decorator to require organization admin (canEdit on Organization)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthenticated()
        decision = decide(current_user, ObjectType.ORGANIZATION, Action.EDIT)
        if not decision:
            return access_denied_response(decision)
        return f(*args, **kwargs)
    return decorated_function


def platform_admin_required(f):
    """Decorator to require a platform super admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return _unauthenticated()
        if not is_platform_admin():
            return jsonify({'success': False, 'error': 'Platform administrator required.'}), 403
        return f(*args, **kwargs)
    return decorated_function


# =============================================================================
# ORGANIZATION SETUP
# =============================================================================

TRIAL_DAYS = 14
BILLING_PERIOD_DAYS = 30


def create_organization(name: str, owner, plan_name: str = 'freemium'):
    """
    Set up a new organization.
    Creates the subscription, clones the default profiles and makes the
    owner its administrator, all in one commit.

    Args:
        name: Organization name
        owner: User who becomes the administrator
        plan_name: Initial plan (paid plans start trialing)

    Returns:
        The new Organization

    Raises:
        InvalidRequestError: If the plan does not exist
        ProfileError: If the owner already belongs to an organization
    """
    from models import db, Organization, Plan, Subscription
    from services.audit_service import log_organization_created
    from utils import generate_unique_slug

    plan = Plan.query.filter_by(name=plan_name, is_active=True).first()
    if plan is None:
        raise InvalidRequestError(f"Unknown plan: {plan_name!r}", field='planName', value=plan_name)
    if owner.organization_id is not None:
        raise ProfileError("User already belongs to an organization.")

    now = datetime.utcnow()
    is_free = not plan.price_monthly
    try:
        org = Organization(name=name, slug=generate_unique_slug(name))
        db.session.add(org)
        db.session.flush()  # Get org.id

        db.session.add(Subscription(
            organization_id=org.id,
            plan_id=plan.id,
            status=Subscription.STATUS_ACTIVE if is_free else Subscription.STATUS_TRIALING,
            current_period_start=now,
            current_period_end=now + timedelta(days=BILLING_PERIOD_DAYS if is_free else TRIAL_DAYS),
        ))

        profiles = create_default_profiles(org.id, commit=False)
        owner_profile = next(p for p in profiles if p.name == OWNER_PROFILE)

        owner.organization_id = org.id
        owner.profile_id = owner_profile.id
        log_organization_created(org, plan.name, actor_id=owner.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_user(owner.id)
    current_app.logger.info(f"Organization {org.id} ({org.slug}) created on {plan.name}")
    return org


# =============================================================================
# INVITATIONS
# =============================================================================

def invite_user(org_id: int, email: str, profile_id: int = None, invited_by=None):
    """
    Invite a new member.
    The seat limit is checked before anything is written.

    Args:
        org_id: Organization ID
        email: Invitee email
        profile_id: Profile assigned on acceptance (organization or global)
        invited_by: Inviting User (optional)

    Returns:
        The new UserInvitation

    Raises:
        LimitExceededError: If active users + pending invitations reach the limit
        ProfileError: If the profile cannot be assigned in this organization,
            or it grants administrator access and the inviter is not an admin
        InvalidRequestError: If the email already belongs to a member or has a pending invitation
    """
    from models import db, Organization, Profile, User, UserInvitation
    from services.audit_service import log_user_invited
    from services.email_service import send_invitation_email
    from utils import generate_invitation_token, normalize_email

    assert_can_add(org_id, RESOURCE_USERS)

    email = normalize_email(email)
    if User.query.filter_by(email=email, organization_id=org_id).first():
        raise InvalidRequestError("This user is already a member of the organization.", field='email', value=email)
    if UserInvitation.pending_for_org(org_id).filter_by(email=email).first():
        raise InvalidRequestError("An invitation is already pending for this email.", field='email', value=email)

    if profile_id is not None:
        profile = db.session.get(Profile, profile_id)
        if profile is None or not profile.is_active or (
                not profile.is_global and profile.organization_id != org_id):
            raise ProfileError("Profile cannot be assigned in this organization.")
        if is_admin_profile(profile):
            validate_admin_grant(invited_by.id if invited_by else None, org_id)

    invitation = UserInvitation(
        organization_id=org_id,
        email=email,
        profile_id=profile_id,
        token=generate_invitation_token(),
        invited_by_id=invited_by.id if invited_by else None,
        expires_at=datetime.utcnow() + timedelta(days=current_app.config['INVITATION_EXPIRY_DAYS']),
    )
    db.session.add(invitation)
    try:
        db.session.flush()
        log_user_invited(invitation, actor_id=invited_by.id if invited_by else None)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    org = db.session.get(Organization, org_id)
    send_invitation_email(invitation, org.name, invited_by.full_name if invited_by else None)
    return invitation


def accept_invitation(token: str, user):
    """
    Join an organization through a pending invitation.

    Raises:
        InvalidRequestError: If the token is unknown, used or expired, or
            the invitation was sent to another email
        ProfileError: If the user already belongs to an organization
    """
    from models import db, UserInvitation
    from utils import normalize_email

    invitation = UserInvitation.query.filter_by(token=token).first()
    if invitation is None or invitation.status != UserInvitation.STATUS_PENDING:
        raise InvalidRequestError("Invitation not found or already used.", field='token')
    if invitation.expires_at <= datetime.utcnow():
        raise InvalidRequestError("Invitation has expired.", field='token')
    if normalize_email(user.email) != invitation.email:
        raise InvalidRequestError("Invitation was sent to another email address.", field='email')
    if user.organization_id is not None:
        raise ProfileError("User already belongs to an organization.")

    user.organization_id = invitation.organization_id
    user.profile_id = invitation.profile_id
    invitation.status = UserInvitation.STATUS_ACCEPTED
    invitation.accepted_at = datetime.utcnow()
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_user(user.id)
    return invitation
