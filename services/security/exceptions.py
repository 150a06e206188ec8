"""
Authorization Exceptions

Raised for malformed queries and rejected mutations. Access denials are
never exceptions: the engine returns a Deny decision instead.
"""


class SecurityError(Exception):
    """Base exception for all authorization errors."""
    reason = 'security_error'


class InvalidRequestError(SecurityError):
    """
    Raised when a caller asks a malformed question.

    Unknown object type, unknown action or a missing user. Distinct from a
    denial so callers can tell a logic bug from a real refusal.
    """
    reason = 'invalid_request'

    def __init__(self, message: str, field: str = None, value=None):
        self.field = field
        self.value = value
        super().__init__(message)


class LimitExceededError(SecurityError):
    """Raised when creating a resource would go past the plan limit."""
    reason = 'limit_exceeded'

    def __init__(self, message: str, resource: str, current: int, limit: int):
        self.resource = resource
        self.current = current
        self.limit = limit
        super().__init__(message)


class PlanChangeError(SecurityError):
    """
    Raised when a plan change is rejected.

    Carries every violation found, not just the first.
    """
    reason = 'plan_change_rejected'

    def __init__(self, message: str, errors=None, current_usage=None,
                 target_limits=None, is_downgrade: bool = False):
        self.errors = list(errors or [])
        self.current_usage = current_usage
        self.target_limits = target_limits
        self.is_downgrade = is_downgrade
        super().__init__(message)


class ProfileError(SecurityError):
    """Raised for illegal profile writes (cross-organization, global profile edits)."""
    reason = 'profile_error'
