"""
Feature Gate tests: effective plan resolution and fail-closed fallbacks.

Run with: python -m pytest tests/test_feature_flags.py -v
"""

import pytest
from flask import jsonify
from sqlalchemy.exc import OperationalError

import feature_flags
from feature_flags import (
    feature_required,
    get_org_features,
    invalidate_org_features,
    load_org_features,
    org_has_feature,
)
from models import Plan, Subscription
from tier_config import get_definition_features


def _freemium_features():
    return Plan.query.filter_by(name='freemium').first().enabled_features


class TestEffectivePlan:

    def test_active_subscription_uses_its_plan(self, make_org):
        org = make_org('pro')
        plan = get_org_features(org.id)
        assert plan.plan_name == 'pro'
        assert plan.status == 'active'
        assert 'bank_sync' in plan.features
        assert not plan.is_fallback

    def test_trialing_subscription_uses_its_plan(self, make_org):
        org = make_org('agency', status=Subscription.STATUS_TRIALING)
        assert get_org_features(org.id).plan_name == 'agency'

    @pytest.mark.parametrize('status', ['past_due', 'canceled', 'expired'])
    def test_inactive_subscription_gets_exactly_freemium(self, make_org, status):
        org = make_org('enterprise', status=status)
        plan = get_org_features(org.id)
        assert plan.plan_name == 'freemium'
        assert plan.features == _freemium_features()
        assert plan.status == status
        assert plan.is_fallback

    def test_no_subscription_is_freemium(self, db, make_org):
        org = make_org('pro')
        db.session.delete(Subscription.query.filter_by(organization_id=org.id).first())
        db.session.commit()
        assert get_org_features(org.id).plan_name == 'freemium'

    def test_no_organization_is_freemium(self, app):
        plan = get_org_features(None)
        assert plan.plan_name == 'freemium'
        assert plan.limits.users == 1

    def test_inactive_plan_falls_back(self, db, make_org):
        org = make_org('pro')
        Plan.query.filter_by(name='pro').first().is_active = False
        db.session.commit()
        assert get_org_features(org.id).plan_name == 'freemium'

    def test_unseeded_freemium_uses_catalog(self, db, app):
        db.session.delete(Plan.query.filter_by(name='freemium').first())
        db.session.commit()
        plan = load_org_features(None)
        assert plan.features == get_definition_features('freemium')

    def test_resolution_is_a_pure_read(self, make_org):
        org = make_org('starter')
        first = load_org_features(org.id)
        second = load_org_features(org.id)
        assert first == second
        assert Subscription.query.filter_by(organization_id=org.id).first().status == 'active'


class TestFailClosed:

    def test_store_error_degrades_to_freemium(self, make_org, monkeypatch):
        org = make_org('enterprise')

        def broken(org_id):
            raise OperationalError('SELECT', {}, Exception('database is unreachable'))

        monkeypatch.setattr(feature_flags, 'load_org_features', broken)
        plan = get_org_features(org.id)
        assert plan.plan_name == 'freemium'
        assert plan.is_fallback
        assert 'api_access' not in plan.features

    def test_error_fallback_is_not_cached(self, make_org, monkeypatch):
        org = make_org('enterprise')

        def broken(org_id):
            raise OperationalError('SELECT', {}, Exception('timeout'))

        monkeypatch.setattr(feature_flags, 'load_org_features', broken)
        assert get_org_features(org.id).plan_name == 'freemium'

        monkeypatch.undo()
        assert get_org_features(org.id).plan_name == 'enterprise'


class TestCaching:

    def test_plan_is_cached_until_invalidated(self, db, make_org):
        org = make_org('starter')
        assert get_org_features(org.id).plan_name == 'starter'

        subscription = Subscription.query.filter_by(organization_id=org.id).first()
        subscription.plan_id = Plan.query.filter_by(name='pro').first().id
        db.session.commit()
        assert get_org_features(org.id).plan_name == 'starter'

        invalidate_org_features(org.id)
        assert get_org_features(org.id).plan_name == 'pro'

    def test_cache_expires_after_ttl(self, db, make_org, fresh_cache, clock):
        org = make_org('starter')
        get_org_features(org.id, fresh_cache)

        Subscription.query.filter_by(organization_id=org.id).first().status = 'expired'
        db.session.commit()
        assert get_org_features(org.id, fresh_cache).plan_name == 'starter'

        clock.advance(301)
        assert get_org_features(org.id, fresh_cache).plan_name == 'freemium'


class TestFeatureChecks:

    def test_org_has_feature(self, make_org):
        org = make_org('starter')
        assert org_has_feature('sms_notifications', org.id)
        assert not org_has_feature('bank_sync', org.id)

    def test_feature_required_decorator(self, app, make_org, make_user):
        org = make_org('starter')
        user = make_user(org)

        @app.route('/test/bank-sync')
        @feature_required('bank_sync')
        def bank_sync():
            return jsonify({'success': True})

        client = app.test_client(user=user)
        response = client.get('/test/bank-sync')
        assert response.status_code == 403
        body = response.get_json()
        assert body['reason'] == 'feature_not_available'
        assert body['planName'] == 'starter'

    def test_feature_required_allows_enabled_feature(self, app, make_org, make_user):
        org = make_org('pro')
        user = make_user(org)

        @app.route('/test/bank-sync-pro')
        @feature_required('bank_sync')
        def bank_sync_pro():
            return jsonify({'success': True})

        assert app.test_client(user=user).get('/test/bank-sync-pro').status_code == 200

    def test_feature_required_needs_login(self, app):

        @app.route('/test/anon')
        @feature_required('messaging')
        def anon():
            return jsonify({'success': True})

        assert app.test_client().get('/test/anon').status_code == 401
