"""
Transactional email via Flask-Mail.
Delivery failures are logged and reported as False; they never undo the
change that triggered the email.
"""

from flask import current_app
from flask_mail import Mail, Message

mail = Mail()


def _send(subject: str, recipients: list, body: str) -> bool:
    recipients = [r for r in recipients if r]
    if not recipients:
        return False

    msg = Message(subject=subject, recipients=recipients, body=body)
    try:
        mail.send(msg)
        current_app.logger.info(f"Email '{subject}' sent to {len(recipients)} recipient(s)")
        return True
    except Exception as e:
        current_app.logger.error(f"Failed to send email '{subject}' to {recipients}: {str(e)}")
        return False


def send_invitation_email(invitation, org_name: str, inviter_name: str = None) -> bool:
    """
    Send an invitation link to a prospective member.

    Args:
        invitation: UserInvitation with token and expiry
        org_name: Name of the inviting organization
        inviter_name: Display name of the inviter (optional)

    Returns:
        True if the email was handed to the mail server
    """
    accept_url = f"{current_app.config['APP_BASE_URL']}/org/invitations/{invitation.token}/accept"
    inviter = inviter_name or 'A team member'
    body = (
        f"{inviter} invited you to join {org_name}.\n\n"
        f"Accept the invitation: {accept_url}\n\n"
        f"This link expires on {invitation.expires_at:%Y-%m-%d}."
    )
    return _send(f"You're invited to join {org_name}", [invitation.email], body)


def send_subscription_expired_email(recipients: list, org_name: str, plan_name: str, status: str) -> bool:
    """Tell organization administrators their subscription lapsed to freemium."""
    body = (
        f"The {plan_name} subscription of {org_name} is now {status}.\n\n"
        f"Your organization has been moved to the Freemium feature set. "
        f"Renew your subscription to restore access to your plan's features."
    )
    return _send(f"{org_name}: subscription {status}", recipients, body)
