# Standard library imports
from datetime import datetime, date
from typing import Optional

# Third-party imports
import sqlalchemy as sa
import sqlalchemy.orm as so
from flask import current_app
from flask_login import UserMixin
from sqlalchemy import Table, Column, Integer, ForeignKey
from werkzeug.security import generate_password_hash, check_password_hash

# Local application imports
from fitgym import db, login

# Association table for many-to-many relationship
member_roles = Table(
    'member_roles',
    db.Model.metadata,
    Column('member_id', Integer, ForeignKey('member.id', ondelete='CASCADE'), primary_key=True),
    Column('role_id', Integer, ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)
)


class Role(db.Model):
    __tablename__ = 'roles'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    name: so.Mapped[str] = so.mapped_column(sa.String(50), nullable=False, unique=True)

    members: so.Mapped[list['Member']] = so.relationship(
        'Member', secondary=member_roles, back_populates='roles'
    )

    def __repr__(self):
        return f"<Role {self.name}>"


class Member(UserMixin, db.Model):
    __tablename__ = 'member'

    id: so.Mapped[int] = so.mapped_column(primary_key=True)
    membership_number: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, index=True, unique=True, nullable=True)
    email: so.Mapped[str] = so.mapped_column(sa.String(120), index=True, unique=True)
    firstname: so.Mapped[str] = so.mapped_column(sa.String(64), index=True)
    lastname: so.Mapped[str] = so.mapped_column(sa.String(64), index=True)
    phone: so.Mapped[Optional[str]] = so.mapped_column(sa.String(20), nullable=True)
    password_hash: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256))
    is_verified: so.Mapped[bool] = so.mapped_column(sa.Boolean, default=False, nullable=False)
    is_admin: so.Mapped[bool] = so.mapped_column(sa.Boolean, default=False, nullable=False)
    status: so.Mapped[str] = so.mapped_column(sa.String(16), default='Pending', nullable=False)
    membership_type: so.Mapped[str] = so.mapped_column(sa.String(32), default='Standard', nullable=False)
    lockout: so.Mapped[bool] = so.mapped_column(sa.Boolean, default=False, nullable=False)
    last_login: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    last_seen: so.Mapped[Optional[date]] = so.mapped_column(sa.Date, nullable=True)  # daily granularity
    last_auth_email_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=datetime.utcnow, nullable=False)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=datetime.utcnow, nullable=False)

    roles: so.Mapped[list['Role']] = so.relationship(
        'Role', secondary=member_roles, back_populates='members'
    )

    def __repr__(self):
        return '<Member {}>'.format(self.email)

    @property
    def full_name(self):
        return f"{self.firstname} {self.lastname}"

    @property
    def has_temporary_email(self):
        """True while the member still holds the staff-generated {number}@gmail.com address."""
        from fitgym.members.email_rules import is_temporary_email
        return is_temporary_email(self.email)

    @property
    def account_reference(self):
        """Short account ID shown on the settings page."""
        if self.membership_number is None:
            return ''
        return str(self.membership_number).zfill(8)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)
        # Note: Audit logging for password changes is handled in the calling route

    def check_password(self, password):
        if self.password_hash is None or password is None:
            return False
        return check_password_hash(self.password_hash, password)

    def has_role(self, role_name):
        """Check if the member has a specific role."""
        return any(role.name == role_name for role in self.roles)

    def is_staff(self):
        """Admins and Membership Staff may manage other members' records."""
        return self.is_admin or self.has_role('Membership Staff')

    @staticmethod
    def next_membership_number():
        """Next free membership number, starting from FIRST_MEMBERSHIP_NUMBER."""
        highest = db.session.scalar(sa.select(sa.func.max(Member.membership_number)))
        if highest is None:
            return current_app.config.get('FIRST_MEMBERSHIP_NUMBER', 1001)
        return highest + 1

    @staticmethod
    def is_bootstrap_mode():
        """Check if the system is in bootstrap mode (no members exist)."""
        return db.session.scalar(sa.select(sa.func.count(Member.id))) == 0


# Login and activity bookkeeping is not a change to the member record
ACTIVITY_FIELDS = {'last_login', 'last_seen', 'last_auth_email_at', 'updated_at'}


@sa.event.listens_for(Member, 'before_update')
def stamp_member_updated_at(mapper, connection, target):
    changed = {attr.key for attr in sa.inspect(target).attrs if attr.history.has_changes()}
    if changed - ACTIVITY_FIELDS:
        target.updated_at = datetime.utcnow()


@login.user_loader
def load_user(id):
    return db.session.get(Member, int(id))
