"""
Shared fixtures for the authorization test suite.

Each test gets a fresh application on an in-memory SQLite database with
the plan catalog and global profiles seeded.

Run with: python -m pytest tests/ -v
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flask_login import FlaskLoginClient

from app import create_app
from config import TestingConfig
from models import db as _db, Organization, Plan, Profile, ObjectPermission, Subscription, User
from services.cache_helpers import PermissionCache
from services.security import Capabilities, ObjectType, create_default_profiles, seed_global_profiles
from tier_config import seed_plans


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    app.test_client_class = FlaskLoginClient

    with app.app_context():
        _db.create_all()
        seed_plans()
        seed_global_profiles()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def cache(app):
    return app.extensions['permission_cache']


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fresh_cache(clock):
    """A standalone cache driven by the fake clock."""
    return PermissionCache(ttl=300, clock=clock)


@pytest.fixture
def make_org(db):
    """Create an organization with a subscription on the given plan."""
    counter = {'n': 0}

    def _make_org(plan_name='starter', status=Subscription.STATUS_ACTIVE, name=None, with_profiles=True):
        counter['n'] += 1
        n = counter['n']
        org = Organization(name=name or f'Org {n}', slug=f'org-{n}')
        db.session.add(org)
        db.session.flush()

        plan = Plan.query.filter_by(name=plan_name).first()
        db.session.add(Subscription(
            organization_id=org.id,
            plan_id=plan.id,
            status=status,
            current_period_start=datetime.utcnow() - timedelta(days=10),
            current_period_end=datetime.utcnow() + timedelta(days=20),
        ))
        if with_profiles:
            create_default_profiles(org.id, commit=False)
        db.session.commit()
        return org

    return _make_org


@pytest.fixture
def make_user(db):
    counter = {'n': 0}

    def _make_user(org=None, profile=None, is_super_admin=False, is_active=True, email=None):
        counter['n'] += 1
        user = User(
            email=email or f'user{counter["n"]}@example.com',
            first_name='Test',
            last_name=f'User{counter["n"]}',
            organization_id=org.id if org else None,
            profile_id=profile.id if profile else None,
            is_super_admin=is_super_admin,
            is_active=is_active,
        )
        user.set_password('password123')
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_profile(db):
    """Create an organization profile from {ObjectType: Capabilities}."""

    def _make_profile(org, name, permissions=None, is_active=True):
        profile = Profile(organization_id=org.id if org else None, name=name, is_active=is_active)
        db.session.add(profile)
        db.session.flush()
        for object_type, caps in (permissions or {}).items():
            db.session.add(ObjectPermission(
                profile_id=profile.id,
                object_type=object_type.value,
                can_create=caps.can_create,
                can_read=caps.can_read,
                can_edit=caps.can_edit,
                can_delete=caps.can_delete,
                can_view_all=caps.can_view_all,
            ))
        db.session.commit()
        return profile

    return _make_profile


@pytest.fixture
def org_profile():
    """Look up one of an organization's default profiles by name."""

    def _org_profile(org, name):
        return Profile.query.filter_by(organization_id=org.id, name=name).first()

    return _org_profile


def full_caps():
    return Capabilities(can_create=True, can_read=True, can_edit=True, can_delete=True, can_view_all=True)


@pytest.fixture
def full():
    return full_caps()


@pytest.fixture
def all_object_types():
    return list(ObjectType)
