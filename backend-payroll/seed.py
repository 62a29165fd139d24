#!/usr/bin/env python3
"""
Seed initial data for the PayrollPro backend.

Creates:
  1. Database tables (if missing)
  2. Admin account
  3. Demo plants
  4. One plant manager

Usage:
    python seed.py
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from payroll import create_app, db


# ── Configuration ────────────────────────────────────────────
ADMIN_EMAIL    = os.environ.get('SEED_ADMIN_EMAIL', 'admin@payrollpro.local')
ADMIN_PASSWORD = os.environ.get('SEED_ADMIN_PASSWORD', 'admin123')
ADMIN_NAME     = 'PayrollPro Admin'

PLANTS = [
    ('North Plant', 'Lyon'),
    ('South Plant', 'Marseille'),
]

MANAGER_EMAIL    = 'manager@payrollpro.local'
MANAGER_PASSWORD = 'manager123'
MANAGER_NAME     = 'Jeanne Martin'
# ─────────────────────────────────────────────────────────────


def seed():
    env = os.environ.get('FLASK_ENV', 'development')
    app = create_app(env)

    with app.app_context():
        from payroll.models import Plant, UserProfile, UserRole

        # 1. Create tables
        db.create_all()
        print('✓ Tables created / checked')

        # 2. Admin
        admin = UserProfile.query.filter_by(email=ADMIN_EMAIL).first()
        if not admin:
            admin = UserProfile(
                full_name=ADMIN_NAME,
                email=ADMIN_EMAIL,
                role=UserRole.ADMIN.value,
                is_active=True,
            )
            admin.set_password(ADMIN_PASSWORD)
            db.session.add(admin)
            db.session.commit()
            print(f'✓ Admin created: {ADMIN_EMAIL} / {ADMIN_PASSWORD}')
        else:
            print(f'✓ Admin already exists: {admin.email}')

        # 3. Plants
        plants = []
        for name, location in PLANTS:
            plant = Plant.query.filter_by(name=name).first()
            if not plant:
                plant = Plant(name=name, location=location)
                db.session.add(plant)
                db.session.commit()
                print(f'✓ Plant created: {name} ({plant.id})')
            else:
                print(f'✓ Plant already exists: {name}')
            plants.append(plant)

        # 4. Manager
        manager = UserProfile.query.filter_by(email=MANAGER_EMAIL).first()
        if not manager:
            manager = UserProfile(
                full_name=MANAGER_NAME,
                email=MANAGER_EMAIL,
                role=UserRole.MANAGER.value,
                plant_id=plants[0].id,
                is_active=True,
            )
            manager.set_password(MANAGER_PASSWORD)
            db.session.add(manager)
            db.session.commit()
            print(f'✓ Manager created: {MANAGER_EMAIL} / {MANAGER_PASSWORD}')
        else:
            print(f'✓ Manager already exists: {manager.email}')

        # Done
        print('\n' + '=' * 50)
        print('SEED DONE')
        print('=' * 50)
        print(f'\nAdmin:    {ADMIN_EMAIL} / {ADMIN_PASSWORD}')
        print(f'Manager:  {MANAGER_EMAIL} / {MANAGER_PASSWORD}')


if __name__ == '__main__':
    seed()
