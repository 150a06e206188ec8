# jobs package
from .subscription_expiry import expire_subscriptions, expire_subscription, find_lapsed_subscriptions

__all__ = [
    'expire_subscriptions',
    'expire_subscription',
    'find_lapsed_subscriptions'
]
