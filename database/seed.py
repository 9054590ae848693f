"""
Database seeding for the property billing service.
Creates the default job categories and unit sizes if they are missing.
"""

import logging
from sqlalchemy import func
from database.connection import get_db_session
from database.models import JobCategory, UnitSize

logger = logging.getLogger(__name__)

DEFAULT_JOB_CATEGORIES = [
    {'name': 'Regular Paint', 'description': 'Standard interior and exterior painting services',
     'sort_order': 1, 'is_default': True, 'is_system': True},
    {'name': 'Ceiling Paint', 'description': 'Specialized ceiling painting services',
     'sort_order': 2, 'is_default': False, 'is_system': True},
    {'name': 'Unit with High Ceilings', 'description': 'Billing for units with high ceilings',
     'sort_order': 3, 'is_default': False, 'is_system': True},
    {'name': 'Extra Charges', 'description': 'Additional charges for special services or materials',
     'sort_order': 4, 'is_default': False, 'is_system': True},
    {'name': 'Miscellaneous', 'description': 'Miscellaneous billing items',
     'sort_order': 5, 'is_default': False, 'is_system': False},
]

DEFAULT_UNIT_SIZES = ['Studio', '1 Bedroom', '2 Bedroom', '3 Bedroom', '4 Bedroom']


def seed_job_categories(session):
    """Create any missing default job categories. Matching is case-insensitive."""
    created = []
    for entry in DEFAULT_JOB_CATEGORIES:
        exists = session.query(JobCategory).filter(
            func.lower(JobCategory.name) == entry['name'].lower()
        ).first()
        if exists:
            continue
        category = JobCategory(**entry)
        session.add(category)
        created.append(category)
    session.flush()
    if created:
        logger.info(f"Created {len(created)} default job categories")
    return created


def seed_unit_sizes(session):
    """Create any missing unit sizes."""
    existing = {u.unit_size_label for u in session.query(UnitSize).all()}
    created = []
    for label in DEFAULT_UNIT_SIZES:
        if label in existing:
            continue
        unit_size = UnitSize(unit_size_label=label)
        session.add(unit_size)
        created.append(unit_size)
    session.flush()
    if created:
        logger.info(f"Created {len(created)} unit sizes")
    return created


def seed_database(session_factory=None):
    """
    Seed the database with default data if empty.
    Call this at application startup.
    """
    try:
        with get_db_session(session_factory) as session:
            seed_job_categories(session)
            seed_unit_sizes(session)
        logger.info("Database seeding completed successfully")
        return True
    except Exception as e:
        logger.error(f"Database seeding failed: {e}")
        raise


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    seed_database()
