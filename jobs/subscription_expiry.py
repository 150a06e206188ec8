# jobs/subscription_expiry.py
"""
Lapse subscriptions past their end date plus the grace period.
Run daily via scheduler, inside an application context.
"""

import logging
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

# Statuses that still need watching; canceled/expired are terminal
WATCHED_STATUSES = ('active', 'trialing', 'past_due')


def find_lapsed_subscriptions(now: datetime, grace_days: int) -> list:
    """Subscriptions whose effective end plus grace is in the past."""
    from models import Subscription

    cutoff = now - timedelta(days=grace_days)
    candidates = Subscription.query.filter(Subscription.status.in_(WATCHED_STATUSES)).all()
    return [s for s in candidates if s.effective_end is not None and s.effective_end < cutoff]


def expire_subscription(subscription, now: datetime) -> str:
    """
    Move one subscription to its terminal status.
    Scheduled cancellations become canceled, everything else expired.

    Returns:
        The new status
    """
    from models import db, Subscription
    from services.audit_service import log_subscription_expired
    from services.cache_helpers import clear_org_cache

    if subscription.cancel_at_period_end:
        new_status = Subscription.STATUS_CANCELED
        subscription.canceled_at = subscription.canceled_at or now
    else:
        new_status = Subscription.STATUS_EXPIRED

    log_subscription_expired(subscription, new_status)
    subscription.status = new_status
    db.session.commit()

    # Next decision for this org falls back to freemium
    clear_org_cache(subscription.organization_id)
    return new_status


def _notify_admins(subscription, new_status: str):
    from models import User
    from services.email_service import send_subscription_expired_email
    from services.security.profiles import org_admin_user_ids

    admin_ids = org_admin_user_ids(subscription.organization_id)
    if not admin_ids:
        return
    emails = [u.email for u in User.query.filter(User.id.in_(admin_ids)).all()]
    send_subscription_expired_email(
        emails,
        subscription.organization.name,
        subscription.plan.display_name,
        new_status,
    )


def expire_subscriptions(now: datetime = None, grace_days: int = None, notify: bool = True) -> int:
    """
    Expire every lapsed subscription.

    Args:
        now: Reference time (defaults to utcnow)
        grace_days: Days of grace after the end date (defaults to SUBSCRIPTION_GRACE_DAYS)
        notify: Email organization administrators

    Returns:
        Number of subscriptions expired
    """
    from flask import current_app
    from models import db

    now = now or datetime.utcnow()
    if grace_days is None:
        grace_days = current_app.config['SUBSCRIPTION_GRACE_DAYS']

    expired_count = 0
    for subscription in find_lapsed_subscriptions(now, grace_days):
        org_id = subscription.organization_id
        try:
            new_status = expire_subscription(subscription, now)
        except Exception as e:
            logger.error(f"Failed to expire subscription {subscription.id} (org {org_id}): {e}")
            db.session.rollback()
            continue

        expired_count += 1
        logger.info(f"Subscription {subscription.id} of organization {org_id} is now {new_status}")
        if not notify:
            continue
        try:
            _notify_admins(subscription, new_status)
        except Exception as e:
            # The expiry is already committed; only the email is lost
            logger.error(f"Failed to notify admins of organization {org_id}: {e}")
            db.session.rollback()

    logger.info(f"[{now}] Expired {expired_count} subscriptions past their grace period")
    return expired_count
