# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
from sqlalchemy import event
from werkzeug.security import generate_password_hash

from tier_config import PlanLimits, normalize_limit

db = SQLAlchemy()


# =============================================================================
# TENANCY
# =============================================================================

class Organization(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    users = db.relationship('User', backref='organization', lazy='dynamic',
                            foreign_keys='User.organization_id')
    invitations = db.relationship('UserInvitation', backref='organization', lazy='dynamic')
    subscription = db.relationship('Subscription', backref='organization', uselist=False)

    def __repr__(self):
        return f'<Organization {self.slug}>'


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=True, index=True)
    # A user without a profile has no object permissions anywhere
    profile_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=True, index=True)
    is_super_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    profile = db.relationship('Profile', backref=db.backref('users', lazy='dynamic'))

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f'<User {self.email}>'


class UserInvitation(db.Model):
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REVOKED = 'revoked'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    email = db.Column(db.String(120), nullable=False)
    profile_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    invited_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    expires_at = db.Column(db.DateTime, nullable=False)
    accepted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    invited_by = db.relationship('User', foreign_keys=[invited_by_id])

    @classmethod
    def pending_for_org(cls, org_id, now=None):
        """Invitations still counting against the organization's user seats."""
        now = now or datetime.utcnow()
        return cls.query.filter(
            cls.organization_id == org_id,
            cls.status == cls.STATUS_PENDING,
            cls.expires_at > now
        )


# =============================================================================
# BILLING
# =============================================================================

class Plan(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    display_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price_monthly = db.Column(db.Integer)  # NULL means custom pricing
    lots_limit = db.Column(db.Integer)  # NULL means unlimited
    users_limit = db.Column(db.Integer)
    extranet_tenants_limit = db.Column(db.Integer)
    features = db.Column(db.JSON, nullable=False, default=dict)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    @property
    def limits(self) -> PlanLimits:
        return PlanLimits(
            lots=normalize_limit(self.lots_limit),
            users=normalize_limit(self.users_limit),
            extranet_tenants=normalize_limit(self.extranet_tenants_limit),
        )

    @property
    def enabled_features(self) -> frozenset:
        return frozenset(key for key, enabled in (self.features or {}).items() if enabled is True)

    def __repr__(self):
        return f'<Plan {self.name}>'


class Subscription(db.Model):
    STATUS_ACTIVE = 'active'
    STATUS_TRIALING = 'trialing'
    STATUS_PAST_DUE = 'past_due'
    STATUS_CANCELED = 'canceled'
    STATUS_EXPIRED = 'expired'

    STATUSES = (STATUS_ACTIVE, STATUS_TRIALING, STATUS_PAST_DUE, STATUS_CANCELED, STATUS_EXPIRED)
    # Only these make the referenced plan effective
    EFFECTIVE_STATUSES = (STATUS_ACTIVE, STATUS_TRIALING)

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), unique=True, nullable=False)
    plan_id = db.Column(db.Integer, db.ForeignKey('plan.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
    current_period_start = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    current_period_end = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    canceled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    plan = db.relationship('Plan')

    @property
    def is_effective(self):
        return self.status in self.EFFECTIVE_STATUSES

    @property
    def effective_end(self):
        """Date after which the subscription lapses, if any."""
        if self.cancel_at_period_end:
            return self.current_period_end
        return self.end_date or self.current_period_end


# =============================================================================
# PROFILES & OBJECT PERMISSIONS
# =============================================================================

class Profile(db.Model):
    __table_args__ = (
        db.UniqueConstraint('organization_id', 'name', name='uq_profile_org_name'),
    )

    id = db.Column(db.Integer, primary_key=True)
    # NULL organization means a global profile shared by every tenant
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    is_system_profile = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    permissions = db.relationship('ObjectPermission', backref='profile',
                                  cascade='all, delete-orphan',
                                  order_by='ObjectPermission.object_type')

    @property
    def is_global(self):
        return self.organization_id is None

    def get_permission(self, object_type):
        for permission in self.permissions:
            if permission.object_type == object_type:
                return permission
        return None

    def __repr__(self):
        return f'<Profile {self.name}>'


class ObjectPermission(db.Model):
    __table_args__ = (
        db.UniqueConstraint('profile_id', 'object_type', name='uq_object_permission_profile_type'),
    )

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey('profile.id', ondelete='CASCADE'), nullable=False, index=True)
    object_type = db.Column(db.String(30), nullable=False)
    # Derived from the booleans on every write, see _sync_access_level
    access_level = db.Column(db.String(20), nullable=False, default='None')
    can_create = db.Column(db.Boolean, nullable=False, default=False)
    can_read = db.Column(db.Boolean, nullable=False, default=False)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)
    can_view_all = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'objectType': self.object_type,
            'accessLevel': self.access_level,
            'canCreate': self.can_create,
            'canRead': self.can_read,
            'canEdit': self.can_edit,
            'canDelete': self.can_delete,
            'canViewAll': self.can_view_all,
        }


@event.listens_for(ObjectPermission, 'before_insert')
@event.listens_for(ObjectPermission, 'before_update')
def _sync_access_level(mapper, connection, target):
    """Recompute the access level label from the booleans on every write."""
    from services.security.types import Capabilities, derive_access_level

    caps = Capabilities(
        can_create=bool(target.can_create),
        can_read=bool(target.can_read),
        can_edit=bool(target.can_edit),
        can_delete=bool(target.can_delete),
        can_view_all=bool(target.can_view_all),
    )
    target.access_level = derive_access_level(caps).value


# =============================================================================
# BUSINESS OBJECTS
# =============================================================================

class Property(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(300))
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    units = db.relationship('Unit', backref='property', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'createdById': self.created_by_id,
        }


class Unit(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('property.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Tenant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    email = db.Column(db.String(120))
    has_extranet_access = db.Column(db.Boolean, nullable=False, default=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Lease(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey('unit.id'), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenant.id'))
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    rent_amount = db.Column(db.Numeric(12, 2))

    unit = db.relationship('Unit', backref=db.backref('leases', lazy='dynamic'))
    tenant = db.relationship('Tenant', backref=db.backref('leases', lazy='dynamic'))


class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    lease_id = db.Column(db.Integer, db.ForeignKey('lease.id'))
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenant.id'))
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    lease = db.relationship('Lease')
    tenant = db.relationship('Tenant')


class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='pending')
    due_date = db.Column(db.DateTime)
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    created_by = db.relationship('User', foreign_keys=[created_by_id])
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'createdById': self.created_by_id,
            'assignedToId': self.assigned_to_id,
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    recipient_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenant.id'))
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class JournalEntry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), nullable=False, index=True)
    entry_date = db.Column(db.Date, nullable=False)
    label = db.Column(db.String(200), nullable=False)
    debit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    credit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'))


# =============================================================================
# AUDIT
# =============================================================================

class AuditEvent(db.Model):
    PROFILE_ASSIGNED = 'profile_assigned'
    PERMISSION_UPDATED = 'permission_updated'
    PLAN_CHANGED = 'plan_changed'
    USER_INVITED = 'user_invited'
    ORGANIZATION_CREATED = 'organization_created'
    SUBSCRIPTION_EXPIRED = 'subscription_expired'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organization.id'), index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    event_type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text)
    event_data = db.Column(db.JSON, nullable=False, default=dict)
    source = db.Column(db.String(20), nullable=False, default='app')
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @classmethod
    def log(cls, event_type, **kwargs):
        """Add an event to the current session; the caller's commit persists it."""
        event = cls(event_type=event_type, **kwargs)
        db.session.add(event)
        return event
