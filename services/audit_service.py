"""
Audit Service - Audit trail for authorization changes.

Profile assignments, permission edits, plan changes and invitations are
recorded as AuditEvent rows. Events are added to the caller's session so
they commit atomically with the change they describe.
"""

from flask import has_request_context, request
from flask_login import current_user
from models import AuditEvent

USER_AGENT_MAX_LENGTH = 500


def get_request_context():
    """(ip_address, user_agent) of the request being served, or (None, None) in jobs."""
    if not has_request_context():
        return None, None

    # First hop of X-Forwarded-For is the client behind the proxy
    forwarded = request.headers.get('X-Forwarded-For', '')
    client_ip = forwarded.split(',')[0].strip() or request.remote_addr
    agent = request.headers.get('User-Agent', '')[:USER_AGENT_MAX_LENGTH]
    return client_ip, agent


def get_current_actor_id():
    """Id of the logged-in user, None for anonymous requests and background jobs."""
    if not has_request_context():
        return None
    return current_user.id if current_user.is_authenticated else None


def log_event(event_type, organization_id=None, description=None, event_data=None,
              source='app', actor_id=None):
    """
    Record an audit event, filling in the request's actor, IP and user agent.

    Args:
        event_type: One of the AuditEvent type constants
        organization_id: Organization the event belongs to
        description: Human-readable description of the event
        event_data: Dict of additional context data
        source: Source of the event ('app', 'system')
        actor_id: Override for the actor (defaults to current user)

    Returns:
        The AuditEvent instance (not yet committed)
    """
    ip_address, user_agent = get_request_context()

    if actor_id is None:
        actor_id = get_current_actor_id()

    return AuditEvent.log(
        event_type,
        organization_id=organization_id,
        actor_id=actor_id,
        description=description,
        event_data=event_data or {},
        source=source,
        ip_address=ip_address,
        user_agent=user_agent
    )


# =============================================================================
# AUTHORIZATION EVENTS
# =============================================================================

def log_profile_assigned(user, old_profile_id, new_profile, actor_id=None):
    """Log when a user's profile is reassigned."""
    return log_event(
        event_type=AuditEvent.PROFILE_ASSIGNED,
        organization_id=user.organization_id,
        description=f"Profile of {user.email} set to {new_profile.name}",
        event_data={
            'user_id': user.id,
            'old_profile_id': old_profile_id,
            'new_profile_id': new_profile.id,
        },
        actor_id=actor_id
    )


def log_permission_updated(profile, object_type, capabilities, actor_id=None):
    """Log when a profile's permission row is edited."""
    return log_event(
        event_type=AuditEvent.PERMISSION_UPDATED,
        organization_id=profile.organization_id,
        description=f"{object_type} permissions updated on profile {profile.name}",
        event_data={
            'profile_id': profile.id,
            'object_type': object_type,
            'permission': capabilities,
        },
        actor_id=actor_id
    )


def log_plan_changed(org_id, old_plan, new_plan, is_downgrade, actor_id=None):
    """Log when an organization changes plan."""
    return log_event(
        event_type=AuditEvent.PLAN_CHANGED,
        organization_id=org_id,
        description=f"Plan changed from {old_plan} to {new_plan}",
        event_data={
            'from': old_plan,
            'to': new_plan,
            'is_downgrade': is_downgrade,
        },
        actor_id=actor_id
    )


def log_user_invited(invitation, actor_id=None):
    """Log when an invitation is sent."""
    return log_event(
        event_type=AuditEvent.USER_INVITED,
        organization_id=invitation.organization_id,
        description=f"Invitation sent to {invitation.email}",
        event_data={
            'email': invitation.email,
            'profile_id': invitation.profile_id,
            'expires_at': invitation.expires_at.isoformat(),
        },
        actor_id=actor_id
    )


def log_organization_created(org, plan_name, actor_id=None):
    """Log when an organization is set up."""
    return log_event(
        event_type=AuditEvent.ORGANIZATION_CREATED,
        organization_id=org.id,
        description=f"Organization {org.name} created on {plan_name}",
        event_data={'plan': plan_name},
        actor_id=actor_id
    )


def log_subscription_expired(subscription, new_status):
    """Log when the expiry job lapses a subscription."""
    return log_event(
        event_type=AuditEvent.SUBSCRIPTION_EXPIRED,
        organization_id=subscription.organization_id,
        description=f"Subscription {subscription.id} marked {new_status}",
        event_data={'subscription_id': subscription.id, 'status': new_status},
        source='system'
    )
