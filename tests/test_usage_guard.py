"""
Usage / Limit Guard tests: plan-change validation and creation limits.

Run with: python -m pytest tests/test_usage_guard.py -v
"""

import pytest

from feature_flags import get_org_features
from models import Plan, Property, Subscription, Tenant, Unit, UserInvitation
from services.security import (
    InvalidRequestError,
    LimitExceededError,
    PlanChangeError,
    assert_can_add,
    change_plan,
    check_can_add,
    find_limit_violations,
    get_current_usage,
    get_usage_warnings,
    validate_plan_change,
)
from services.security.usage_guard import (
    RESOURCE_EXTRANET_TENANTS,
    RESOURCE_LOTS,
    RESOURCE_USERS,
    UsageCounts,
)
from services.tenant_service import invite_user
from tier_config import UNLIMITED, PlanLimits


@pytest.fixture
def add_lots(db):
    """Add units (lots) to an organization under one property."""

    def _add_lots(org, count):
        prop = Property(organization_id=org.id, name=f'Residence {org.id}')
        db.session.add(prop)
        db.session.flush()
        for i in range(count):
            db.session.add(Unit(property_id=prop.id, name=f'Lot {i + 1}'))
        db.session.commit()
        return prop

    return _add_lots


@pytest.fixture
def add_members(make_user):
    def _add_members(org, count):
        return [make_user(org) for _ in range(count)]
    return _add_members


@pytest.fixture
def small_plan(db):
    """A custom plan allowing ten users and ten lots."""
    plan = Plan(
        name='small10',
        display_name='Small 10',
        price_monthly=1000,
        lots_limit=10,
        users_limit=10,
        extranet_tenants_limit=None,
        features={'properties_management': True, 'units_management': True},
        sort_order=5,
    )
    db.session.add(plan)
    db.session.commit()
    return plan


class TestFindLimitViolations:

    def test_usage_over_limit_is_reported(self):
        errors = find_limit_violations(UsageCounts(users=12), PlanLimits(users=10), 'Starter')
        assert len(errors) == 1
        assert '12' in errors[0]
        assert '10' in errors[0]
        assert 'Starter' in errors[0]

    def test_usage_equal_to_limit_is_accepted(self):
        assert find_limit_violations(UsageCounts(users=10), PlanLimits(users=10), 'Starter') == []

    def test_unlimited_is_never_violated(self):
        usage = UsageCounts(lots=10000, users=500, extranet_tenants=9000)
        assert find_limit_violations(usage, PlanLimits(), 'Enterprise') == []

    def test_every_violation_is_reported(self):
        usage = UsageCounts(lots=40, users=3, extranet_tenants=60)
        limits = PlanLimits(lots=30, users=2, extranet_tenants=50)
        errors = find_limit_violations(usage, limits, 'Starter')
        assert len(errors) == 3
        assert errors[0] == 'You have 40 lots, but the Starter plan allows only 30.'

    def test_zero_limit_blocks_any_usage(self):
        errors = find_limit_violations(UsageCounts(extranet_tenants=1), PlanLimits(extranet_tenants=0), 'Tiny')
        assert len(errors) == 1


class TestCurrentUsage:

    def test_counts(self, db, make_org, make_user, add_lots):
        org = make_org('starter')
        add_lots(org, 3)
        make_user(org)
        make_user(org, is_active=False)
        db.session.add(Tenant(organization_id=org.id, first_name='Moussa', last_name='Fall',
                              has_extranet_access=True))
        db.session.add(Tenant(organization_id=org.id, first_name='Fatou', last_name='Ndiaye'))
        db.session.commit()

        usage = get_current_usage(org.id)
        assert usage.lots == 3
        assert usage.users == 1
        assert usage.extranet_tenants == 1
        assert usage.pending_invitations == 0

    def test_other_org_resources_are_not_counted(self, make_org, add_lots):
        org_a, org_b = make_org(), make_org()
        add_lots(org_b, 4)
        assert get_current_usage(org_a.id).lots == 0


class TestPlanChange:

    def test_downgrade_with_excess_usage_is_rejected(self, make_org, add_lots, add_members):
        org = make_org('pro')
        add_lots(org, 6)
        add_members(org, 2)

        with pytest.raises(PlanChangeError) as exc_info:
            change_plan(org.id, 'freemium')

        error = exc_info.value
        assert len(error.errors) == 2
        assert 'You have 6 lots, but the Freemium plan allows only 5.' in error.errors
        assert 'You have 2 users, but the Freemium plan allows only 1.' in error.errors
        assert error.is_downgrade
        assert error.target_limits.lots == 5
        assert Subscription.query.filter_by(organization_id=org.id).first().plan.name == 'pro'

    def test_validation_reports_without_writing(self, make_org, add_lots):
        org = make_org('pro')
        add_lots(org, 31)
        validation = validate_plan_change(org.id, 'starter')
        assert not validation.allowed
        assert validation.is_downgrade
        assert validation.to_dict()['currentUsage']['lots'] == 31
        assert Subscription.query.filter_by(organization_id=org.id).first().plan.name == 'pro'

    def test_upgrade_takes_effect_immediately(self, make_org, add_members):
        org = make_org('starter')
        add_members(org, 2)
        assert get_org_features(org.id).plan_name == 'starter'

        subscription = change_plan(org.id, 'pro')
        assert subscription.plan.name == 'pro'
        assert get_org_features(org.id).plan_name == 'pro'
        assert not validate_plan_change(org.id, 'agency').is_downgrade

    def test_custom_plan_limits(self, make_org, add_members, small_plan):
        org = make_org('agency')
        add_members(org, 11)
        with pytest.raises(PlanChangeError) as exc_info:
            change_plan(org.id, 'small10')
        assert exc_info.value.errors == ['You have 11 users, but the Small 10 plan allows only 10.']

    def test_unlimited_target_accepts_any_usage(self, make_org, add_lots, add_members):
        org = make_org('pro')
        add_lots(org, 120)
        add_members(org, 5)
        assert change_plan(org.id, 'enterprise').plan.name == 'enterprise'

    def test_unknown_plan(self, make_org):
        org = make_org('starter')
        with pytest.raises(InvalidRequestError) as exc_info:
            change_plan(org.id, 'platinum')
        assert exc_info.value.field == 'planName'

    @pytest.mark.parametrize('status', ['past_due', 'canceled', 'expired'])
    def test_lapsed_subscription_cannot_change_plan(self, make_org, status):
        org = make_org('starter', status=status)
        with pytest.raises(PlanChangeError):
            change_plan(org.id, 'pro')

    def test_change_is_audited(self, make_org):
        from models import AuditEvent

        org = make_org('starter')
        change_plan(org.id, 'pro', actor_id=None)
        event = AuditEvent.query.filter_by(organization_id=org.id).order_by(AuditEvent.id.desc()).first()
        assert event is not None
        assert event.event_data['to'] == 'pro'
        assert event.event_type == AuditEvent.PLAN_CHANGED


class TestCreationLimits:

    def test_lots_below_limit(self, make_org, add_lots):
        org = make_org('freemium')
        add_lots(org, 4)
        assert check_can_add(org.id, RESOURCE_LOTS) == (True, "")

    def test_lots_at_limit(self, make_org, add_lots):
        org = make_org('freemium')
        add_lots(org, 5)
        allowed, message = check_can_add(org.id, RESOURCE_LOTS)
        assert not allowed
        assert message == 'Lot limit reached (5 lots). Please upgrade your plan.'

    def test_unlimited_plan(self, make_org, add_lots):
        org = make_org('enterprise')
        add_lots(org, 200)
        assert check_can_add(org.id, RESOURCE_LOTS)[0]
        assert get_org_features(org.id).limits.lots == UNLIMITED

    def test_extranet_tenants(self, db, make_org):
        org = make_org('freemium')
        for i in range(5):
            db.session.add(Tenant(organization_id=org.id, first_name='T', last_name=str(i),
                                  has_extranet_access=True))
        db.session.commit()
        assert not check_can_add(org.id, RESOURCE_EXTRANET_TENANTS)[0]

    def test_unknown_resource(self, make_org):
        with pytest.raises(InvalidRequestError):
            check_can_add(make_org().id, 'parking_spots')

    def test_assert_can_add_carries_counts(self, make_org, add_lots):
        org = make_org('freemium')
        add_lots(org, 5)
        with pytest.raises(LimitExceededError) as exc_info:
            assert_can_add(org.id, RESOURCE_LOTS)
        assert exc_info.value.resource == RESOURCE_LOTS
        assert exc_info.value.current == 5
        assert exc_info.value.limit == 5

    def test_lapsed_org_is_held_to_freemium_limits(self, make_org, add_lots):
        org = make_org('pro', status='past_due')
        add_lots(org, 5)
        assert not check_can_add(org.id, RESOURCE_LOTS)[0]


class TestUserSeats:

    def test_tenth_member_can_be_invited(self, make_org, add_members, small_plan):
        org = make_org('small10')
        add_members(org, 9)
        invitation = invite_user(org.id, 'tenth@acme-properties.com')
        assert invitation.status == UserInvitation.STATUS_PENDING

    def test_eleventh_member_is_rejected_before_writing(self, make_org, add_members, small_plan):
        org = make_org('small10')
        add_members(org, 10)
        with pytest.raises(LimitExceededError) as exc_info:
            invite_user(org.id, 'eleventh@acme-properties.com')
        assert exc_info.value.current == 10
        assert exc_info.value.limit == 10
        assert UserInvitation.query.filter_by(organization_id=org.id).count() == 0

    def test_pending_invitations_hold_seats(self, make_org, add_members, small_plan):
        org = make_org('small10')
        add_members(org, 9)
        invite_user(org.id, 'tenth@acme-properties.com')
        allowed, message = check_can_add(org.id, RESOURCE_USERS)
        assert not allowed
        assert 'User limit reached' in message


class TestUsageWarnings:

    def test_near_and_at_limit(self, make_org, make_user, add_lots):
        org = make_org('freemium')
        add_lots(org, 4)
        make_user(org)

        warnings = {w['resource']: w for w in get_usage_warnings(org.id)}
        assert warnings[RESOURCE_LOTS]['level'] == 'warning'
        assert warnings[RESOURCE_USERS]['level'] == 'limit_reached'
        assert RESOURCE_EXTRANET_TENANTS not in warnings

    def test_over_limit_after_lapse(self, make_org, add_lots):
        org = make_org('starter', status='expired')
        add_lots(org, 8)
        warnings = {w['resource']: w for w in get_usage_warnings(org.id)}
        assert warnings[RESOURCE_LOTS] == {'resource': 'lots', 'current': 8, 'limit': 5, 'level': 'over_limit'}

    def test_no_warnings_on_unlimited_plan(self, make_org, add_lots):
        org = make_org('enterprise')
        add_lots(org, 500)
        assert get_usage_warnings(org.id) == []
