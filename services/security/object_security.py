"""
Object Instance Security

Record-level relation checks applied after the type-level decision. They
can only narrow a type-level Allow, never widen a Deny.

Every object type has an entry in INSTANCE_RULES. A None entry means the
type has no record-level relation and the type-level verdict stands.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from .types import AccessDecision, Action, FailedLevel, ObjectType, Reason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceContext:
    """Who is acting, as far as record relations are concerned."""
    user_id: int
    organization_id: Optional[int]
    action: Action
    is_org_admin: bool = False
    view_all: Callable[[], bool] = lambda: False

    def same_org(self, org_id) -> bool:
        return org_id is not None and org_id == self.organization_id

    @property
    def is_read(self) -> bool:
        return self.action in (Action.READ, Action.VIEW_ALL)


@dataclass(frozen=True)
class InstanceRule:
    model_name: str
    check: Callable[[InstanceContext, object], bool]


# =============================================================================
# RELATION CHECKS
# =============================================================================

def _creator_may_delete(ctx: InstanceContext, record) -> bool:
    if ctx.action is not Action.DELETE or ctx.is_org_admin:
        return True
    return record.created_by_id == ctx.user_id


def _property_org(prop) -> Optional[int]:
    return prop.organization_id if prop is not None else None


def _unit_org(unit) -> Optional[int]:
    return _property_org(unit.property) if unit is not None else None


def _lease_org(lease) -> Optional[int]:
    return _unit_org(lease.unit) if lease is not None else None


def check_property(ctx, record):
    return ctx.same_org(record.organization_id) and _creator_may_delete(ctx, record)


def check_unit(ctx, record):
    # Deleting a lot follows the rule of its property
    return ctx.same_org(_unit_org(record)) and _creator_may_delete(ctx, record.property)


def check_lease(ctx, record):
    return ctx.same_org(_lease_org(record)) and _creator_may_delete(ctx, record.unit.property)


def check_tenant(ctx, record):
    return ctx.same_org(record.organization_id) and _creator_may_delete(ctx, record)


def check_payment(ctx, record):
    if not ctx.same_org(record.organization_id):
        return False
    if record.lease is not None and not ctx.same_org(_lease_org(record.lease)):
        return False
    if record.tenant is not None and not ctx.same_org(record.tenant.organization_id):
        return False
    return True


def check_task(ctx, record):
    if not ctx.same_org(record.organization_id):
        return False
    if ctx.is_org_admin:
        return True
    if ctx.user_id in (record.created_by_id, record.assigned_to_id):
        return True
    # Other members' tasks are readable only with viewAll
    return ctx.is_read and ctx.view_all()


def check_message(ctx, record):
    if not ctx.same_org(record.organization_id):
        return False
    if ctx.is_org_admin:
        return True
    if ctx.user_id in (record.sender_id, record.recipient_id):
        return True
    return ctx.is_read and ctx.view_all()


def check_journal_entry(ctx, record):
    return ctx.same_org(record.organization_id)


def check_user(ctx, record):
    return record.id == ctx.user_id or ctx.same_org(record.organization_id)


def check_organization(ctx, record):
    return record.id == ctx.organization_id


def check_profile(ctx, record):
    if record.organization_id is None:
        # Global profiles are assignable everywhere but never organization-mutated
        return ctx.is_read
    return ctx.same_org(record.organization_id)


INSTANCE_RULES: Dict[ObjectType, Optional[InstanceRule]] = {
    ObjectType.PROPERTY: InstanceRule('Property', check_property),
    ObjectType.UNIT: InstanceRule('Unit', check_unit),
    ObjectType.TENANT: InstanceRule('Tenant', check_tenant),
    ObjectType.LEASE: InstanceRule('Lease', check_lease),
    ObjectType.PAYMENT: InstanceRule('Payment', check_payment),
    ObjectType.TASK: InstanceRule('Task', check_task),
    ObjectType.MESSAGE: InstanceRule('Message', check_message),
    ObjectType.JOURNAL_ENTRY: InstanceRule('JournalEntry', check_journal_entry),
    ObjectType.USER: InstanceRule('User', check_user),
    ObjectType.ORGANIZATION: InstanceRule('Organization', check_organization),
    ObjectType.PROFILE: InstanceRule('Profile', check_profile),
    ObjectType.REPORT: None,
    ObjectType.ACTIVITY: None,
}

_unmapped = set(ObjectType) - set(INSTANCE_RULES)
if _unmapped:
    raise RuntimeError(f"Object types without an instance rule: {sorted(t.value for t in _unmapped)}")


# =============================================================================
# ENTRY POINT
# =============================================================================

def load_record(object_type: ObjectType, object_id: int):
    """Fetch the record behind an instance check, or None."""
    import models

    rule = INSTANCE_RULES[object_type]
    if rule is None:
        return None
    return models.db.session.get(getattr(models, rule.model_name), object_id)


def check_instance(user, object_type: ObjectType, object_id: int, action: Action,
                   type_decision: AccessDecision,
                   view_all: Callable[[], bool] = lambda: False) -> AccessDecision:
    """
    Refine an allowed type-level decision against one record.

    Args:
        user: Acting user
        object_type: Object type of the record
        object_id: Record ID
        action: Requested action
        type_decision: The already-allowed type-level decision
        view_all: Lazily answers whether the user holds viewAll on the type

    Returns:
        AccessDecision with an object-level reason
    """
    def result(allowed, reason):
        return AccessDecision(
            allowed=allowed,
            reason=reason,
            failed_level=None if allowed else FailedLevel.OBJECT,
            object_type=object_type,
            action=action,
            object_id=object_id,
            plan_name=type_decision.plan_name,
        )

    if not type_decision.allowed:
        return replace(type_decision, object_id=object_id)

    rule = INSTANCE_RULES[object_type]
    if rule is None:
        return result(True, type_decision.reason)

    record = load_record(object_type, object_id)
    if record is None:
        return result(False, Reason.OBJECT_NOT_FOUND)

    if type_decision.reason is Reason.SUPER_ADMIN:
        return result(True, Reason.SUPER_ADMIN)

    ctx = InstanceContext(
        user_id=user.id,
        organization_id=user.organization_id,
        action=action,
        is_org_admin=type_decision.reason is Reason.ORGANIZATION_ADMIN,
        view_all=view_all,
    )
    if rule.check(ctx, record):
        return result(True, Reason.OBJECT_PERMISSION_GRANTED)

    logger.info(
        f"Instance check denied user {user.id} {action.value} on {object_type.value} {object_id}"
    )
    return result(False, Reason.OBJECT_PERMISSION_DENIED)
