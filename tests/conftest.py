"""
Pytest configuration and shared fixtures
"""
import os
import sys
import pytest
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture
def test_env_vars():
    """Fixture providing test environment variables"""
    original_env = os.environ.copy()

    os.environ['FLASK_ENV'] = 'testing'
    os.environ['SECRET_KEY'] = 'a9f0c3e1b7d24c6f8e5a1b3c7d9e0f2a4b6c8d0e'
    os.environ['DATABASE_URL'] = 'sqlite://'

    yield

    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with all tables"""
    from database.connection import build_engine, init_db
    eng = build_engine('sqlite://')
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    from database.connection import get_session_factory
    return get_session_factory(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """ORM session committed by the test when it needs to be"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def row_store(session_factory):
    from services.row_store import SQLAlchemyRowStore
    return SQLAlchemyRowStore(session_factory)


@pytest.fixture
def unit_sizes(row_store, session_factory):
    """Seeded unit sizes, in the order the store returns them"""
    from database.connection import get_db_session
    from database.seed import seed_unit_sizes
    with get_db_session(session_factory) as session:
        seed_unit_sizes(session)
    return row_store.select('unit_sizes', order_by=['unit_size_label'])


@pytest.fixture
def seeded(session_factory):
    """Default job categories and unit sizes"""
    from database.seed import seed_database
    seed_database(session_factory)


@pytest.fixture
def make_property(row_store):
    """Factory creating a property and returning its id"""
    def _make(name='Maple Court Apartments'):
        return row_store.insert('properties', [{'property_name': name}])[0]['id']
    return _make


@pytest.fixture
def property_id(make_property):
    return make_property()


@pytest.fixture
def make_job_category(row_store):
    """Factory creating a master job category"""
    def _make(name, sort_order=1, is_default=True, is_hidden=False, is_system=False):
        return row_store.insert('job_categories', [{
            'name': name,
            'sort_order': sort_order,
            'is_default': is_default,
            'is_hidden': is_hidden,
            'is_system': is_system,
        }])[0]
    return _make


@pytest.fixture
def orchestrator(row_store):
    from services.billing_save import BillingSaveOrchestrator
    return BillingSaveOrchestrator(row_store)


# ============================================================================
# APPLICATION
# ============================================================================

@pytest.fixture
def app(row_store, seeded):
    """Flask app sharing the test database"""
    from app_init import create_app
    from config import TestingConfig
    application = create_app(TestingConfig, row_store=row_store)
    yield application
    for property_id in list(application.autosave._timers):
        application.autosave.cancel(property_id)


@pytest.fixture
def client(app):
    return app.test_client()


# ============================================================================
# SAMPLE DATA
# ============================================================================

@pytest.fixture
def sample_line_item(unit_sizes):
    """A fixed-price line item for the first unit size"""
    return {
        'unit_size_id': unit_sizes[0]['id'],
        'bill_amount': '100.00',
        'sub_pay_amount': '40.00',
        'is_hourly': False
    }
