#!/usr/bin/env python3
"""
Create Admin User Script

Creates the core staff roles and a first admin member for a fresh install.
Run this after the database tables have been created.

Usage:
    source venv/bin/activate
    python create_admin_user.py
"""

import os
import sys

import sqlalchemy as sa
from dotenv import load_dotenv

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

load_dotenv('.flaskenv')

from fitgym import create_app, db
from fitgym.models import Member, Role
from fitgym.audit import audit_log_system_event
from config import Config

ADMIN_EMAIL = 'admin@fitgym.example.com'
ADMIN_PASSWORD = 'ChangeMe123!'


def create_core_roles():
    """Create the roles that ship with every install."""
    created = 0
    for role_name in Config.CORE_ROLES:
        if db.session.scalar(sa.select(Role).where(Role.name == role_name)) is None:
            db.session.add(Role(name=role_name))
            created += 1
            print(f"  - Created role: {role_name}")
    db.session.commit()
    return created


def create_admin_user():
    """Create the admin member with default credentials."""
    app = create_app(os.getenv('FLASK_CONFIG') or 'development')

    with app.app_context():
        db.create_all()
        create_core_roles()

        if not Member.is_bootstrap_mode():
            member_count = db.session.scalar(sa.select(sa.func.count(Member.id)))
            print(f"Members already exist in database ({member_count} members)")
            print("Admin user creation skipped")
            return False

        print("Creating admin user...")

        admin_user = Member(
            membership_number=Member.next_membership_number(),
            firstname='Admin',
            lastname='User',
            email=ADMIN_EMAIL,
            status='Active',
            membership_type='Standard',
            is_admin=True,
            is_verified=True
        )
        # Should be changed after first login
        admin_user.set_password(ADMIN_PASSWORD)

        staff_role = db.session.scalar(sa.select(Role).where(Role.name == 'Membership Staff'))
        if staff_role:
            admin_user.roles.append(staff_role)

        db.session.add(admin_user)
        db.session.commit()

        audit_log_system_event('BOOTSTRAP_ADMIN_CREATED',
                               f'Bootstrap admin created: {admin_user.full_name} ({admin_user.email})',
                               {
                                   'member_id': admin_user.id,
                                   'membership_number': admin_user.membership_number,
                                   'is_admin': True,
                                   'bootstrap_user': True
                               })
        return True


if __name__ == '__main__':
    print("=" * 60)
    print("FITGYM - Create Admin User")
    print("=" * 60)

    if create_admin_user():
        print("\nAdmin user created successfully!")
        print("You can now log in with:")
        print(f"  Email:    {ADMIN_EMAIL}")
        print(f"  Password: {ADMIN_PASSWORD}")
        print("\nIMPORTANT: Change the password after your first login!")
    else:
        print("\nAdmin user creation skipped - members already exist.")

    print("\nDone!")
