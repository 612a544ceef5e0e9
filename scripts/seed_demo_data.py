#!/usr/bin/env python3
"""
Seed demo data for clicking through the scout dashboard locally.

Creates sourced leads and an alumni roster covering the main screens:
  1. High-HFI leads on the main view plus a low-HFI lead in the library
  2. A running sprint with one builder mid-way and one waiting on verification
  3. A lead where two finalists are ready for peer voting

Usage:
    python scripts/seed_demo_data.py          # seed all scenarios
    python scripts/seed_demo_data.py --clear  # wipe seeded data first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bridgeit.database import get_session, engine, Base
from bridgeit.models.active_builder import ActiveBuilder
from bridgeit.models.alumni import AlumniProfile
from bridgeit.models.audit_entry import AuditEntry
from bridgeit.models.build import Build, Vote
from bridgeit.models.builder_assignment import BuilderAssignment
from bridgeit.models.lead import Lead
from bridgeit.services import sprints
from bridgeit.services.alumni import put_alumni
from bridgeit.services.leads import put_lead, utcnow
from bridgeit.services.voting import open_voting


# Prefix for seeded IDs so we can clear them
SEED_PREFIX = 'seed-'

ALUMNI = [
    {'id': 'seed-maya',  'name': 'Maya Okafor',   'email': 'maya@alumni.bridge.it',  'specialty': 'Full Stack', 'quality_rating': 4.8},
    {'id': 'seed-leo',   'name': 'Leo Marchetti', 'email': 'leo@alumni.bridge.it',   'specialty': 'Mobile',     'quality_rating': 4.4},
    {'id': 'seed-ines',  'name': 'Ines Duarte',   'email': 'ines@alumni.bridge.it',  'specialty': 'AI',         'quality_rating': 4.9},
    {'id': 'seed-sam',   'name': 'Sam Whitfield', 'email': 'sam@alumni.bridge.it',   'specialty': 'Full Stack', 'quality_rating': 4.1},
    {'id': 'seed-kenji', 'name': 'Kenji Aoki',    'email': 'kenji@alumni.bridge.it', 'specialty': 'Data',       'quality_rating': 4.6},
]

LEADS = [
    {
        'id': 'seed-golden-dragon', 'business_name': 'Golden Dragon Noodle House',
        'category': 'Restaurant', 'hfi_score': 88, 'friction_type': 'Order Intake',
        'location': {'neighborhood': 'Flushing', 'borough': 'Queens', 'zip': '11354'},
        'friction_clusters': [
            {'category': 'intake', 'count': 24, 'recent_count': 15,
             'sample_quotes': ['Nobody answers the phone at dinner', 'Order was wrong again']},
        ],
        'recency_data': {'0_30_days': 15, '31_90_days': 6, '90_plus_days': 3},
        'time_on_task_estimate': '8 hours/week on phone orders', 'review_count': 410, 'rating': 3.9,
    },
    {
        'id': 'seed-bloom-salon', 'business_name': 'Bloom Hair Studio',
        'category': 'Salon', 'hfi_score': 81, 'friction_type': 'Booking',
        'location': {'neighborhood': 'Park Slope', 'borough': 'Brooklyn', 'zip': '11215'},
        'friction_clusters': [
            {'category': 'booking', 'count': 17, 'recent_count': 9,
             'sample_quotes': ['Double-booked twice this month']},
        ],
        'recency_data': {'0_30_days': 9, '31_90_days': 5, '90_plus_days': 2},
        'time_on_task_estimate': '5 hours/week rescheduling', 'review_count': 185, 'rating': 4.2,
    },
    {
        'id': 'seed-harbor-deli', 'business_name': 'Harbor Deli',
        'category': 'Deli', 'hfi_score': 77, 'friction_type': 'Logistics',
        'location': {'neighborhood': 'Red Hook', 'borough': 'Brooklyn', 'zip': '11231'},
        'friction_clusters': [
            {'category': 'logistics', 'count': 11, 'recent_count': 6,
             'sample_quotes': ['Catering order showed up an hour late']},
        ],
        'recency_data': {'0_30_days': 6, '31_90_days': 4, '90_plus_days': 1},
        'time_on_task_estimate': '4 hours/week coordinating deliveries', 'review_count': 96, 'rating': 4.0,
    },
    {
        'id': 'seed-corner-laundry', 'business_name': 'Corner Laundromat',
        'category': 'Laundromat', 'hfi_score': 52, 'friction_type': 'Intake',
        'location': {'neighborhood': 'Astoria', 'borough': 'Queens', 'zip': '11102'},
        'friction_clusters': [],
        'recency_data': {'0_30_days': 1, '31_90_days': 2, '90_plus_days': 6},
        'review_count': 40, 'rating': 4.5,
    },
]


def clear_seed_data():
    """Remove every seeded row (ids carry SEED_PREFIX)."""
    session = get_session()
    try:
        lead_ids = [l.id for l in session.query(Lead).filter(Lead.id.like(f'{SEED_PREFIX}%')).all()]
        build_ids = [b.id for b in session.query(Build).filter(Build.lead_id.in_(lead_ids)).all()]
        session.query(Vote).filter(Vote.build_id.in_(build_ids)).delete(synchronize_session=False)
        for model in (Build, BuilderAssignment, ActiveBuilder, AuditEntry):
            session.query(model).filter(model.lead_id.in_(lead_ids)).delete(synchronize_session=False)
        session.query(Lead).filter(Lead.id.in_(lead_ids)).delete(synchronize_session=False)
        session.query(AlumniProfile).filter(
            AlumniProfile.id.like(f'{SEED_PREFIX}%')
        ).delete(synchronize_session=False)
        session.commit()
        print(f"Cleared {len(lead_ids)} seeded leads")
    finally:
        session.close()


def _complete_all(lead_id, user_id, at):
    for milestone in range(1, 5):
        sprints.submit_checkpoint(lead_id, user_id, milestone, f'https://github.com/{user_id}/m{milestone}', now=at)
        sprints.verify_checkpoint(lead_id, user_id, milestone, True, now=at)


def seed():
    now = utcnow()

    for record in ALUMNI:
        put_alumni(record)
    for record in LEADS:
        put_lead({**record, 'discovered_at': (now - timedelta(days=10)).isoformat()})
    print(f"Seeded {len(ALUMNI)} alumni and {len(LEADS)} leads")

    # Scenario 2: sprint in progress
    started = now - timedelta(days=5)
    sprints.launch_sprint('seed-golden-dragon', 3, 3, now=started)
    sprints.join_sprint('seed-golden-dragon', 'seed-maya', now=started)
    sprints.join_sprint('seed-golden-dragon', 'seed-leo', now=started)
    sprints.submit_checkpoint('seed-golden-dragon', 'seed-maya', 1, 'https://github.com/maya/dragon', now=started + timedelta(days=1))
    sprints.verify_checkpoint('seed-golden-dragon', 'seed-maya', 1, True, now=started + timedelta(days=1, hours=2))
    sprints.submit_checkpoint('seed-golden-dragon', 'seed-maya', 2, 'https://loom.com/share/dragon-core', now=now - timedelta(hours=3))
    print("Sprint running on Golden Dragon (Leo is stalled, Maya awaits verification)")

    # Scenario 3: two finalists ready for voting
    started = now - timedelta(days=9)
    sprints.launch_sprint('seed-bloom-salon', 2, 2, now=started)
    sprints.join_sprint('seed-bloom-salon', 'seed-ines', now=started)
    sprints.join_sprint('seed-bloom-salon', 'seed-kenji', now=started)
    _complete_all('seed-bloom-salon', 'seed-ines', started + timedelta(days=4))
    _complete_all('seed-bloom-salon', 'seed-kenji', started + timedelta(days=5))
    open_voting('seed-bloom-salon', now=now - timedelta(days=1))
    print("Voting open on Bloom Hair Studio")


def main():
    parser = argparse.ArgumentParser(description='Seed demo sprint data')
    parser.add_argument('--clear', action='store_true', help='Remove seeded data before seeding')
    args = parser.parse_args()

    # Local SQLite has no migrations applied
    Base.metadata.create_all(engine)

    if args.clear:
        clear_seed_data()
    seed()


if __name__ == '__main__':
    main()
