"""
Database connection management for the property billing service.
Handles SQLAlchemy engine creation, session management, and connection verification.
"""

import os
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def normalize_database_url(url):
    """Hosted Postgres providers hand out postgres:// URLs; SQLAlchemy wants postgresql://."""
    if url and url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


DATABASE_URL = normalize_database_url(os.environ.get('DATABASE_URL'))

# SQLAlchemy Base for model declarations
Base = declarative_base()

# Engine and SessionLocal are initialized when first needed
engine = None
SessionLocal = None


def build_engine(database_url, **engine_options):
    """
    Create a new engine for the given URL.
    In-memory SQLite shares one connection so every session sees the same tables.
    """
    url = normalize_database_url(database_url)
    if not url:
        logger.error("DATABASE_URL environment variable is not set!")
        raise RuntimeError(
            "DATABASE_URL not configured. Cannot connect to the billing database. "
            "Please set the DATABASE_URL environment variable."
        )

    options = {'pool_pre_ping': True}
    if url.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False}
        if url in ('sqlite://', 'sqlite:///:memory:'):
            options['poolclass'] = StaticPool
    else:
        options.update(pool_size=5, max_overflow=10, pool_recycle=300)
    options.update(engine_options)

    try:
        new_engine = create_engine(url, **options)
        logger.info("Database engine created successfully")
        return new_engine
    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise RuntimeError(f"Failed to connect to database: {e}")


def get_engine(database_url=None, **engine_options):
    """
    Get or create the shared SQLAlchemy engine.

    Args:
        database_url: Overrides DATABASE_URL from the environment
        **engine_options: Passed through to create_engine
    """
    global engine

    if engine is None:
        engine = build_engine(database_url or DATABASE_URL, **engine_options)
    return engine


def get_session_factory(bind=None):
    """Get or create the session factory."""
    global SessionLocal

    if SessionLocal is not None and bind is None:
        return SessionLocal

    factory = sessionmaker(autocommit=False, autoflush=False,
                           bind=bind if bind is not None else get_engine())
    if bind is None:
        SessionLocal = factory
    return factory


@contextmanager
def get_db_session(session_factory=None):
    """
    Context manager for getting a database session.
    Commits on success, rolls back on any exception.

    Example:
        with get_db_session() as db:
            categories = db.query(JobCategory).all()
    """
    factory = session_factory or get_session_factory()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None):
    """
    Create all tables. Production schemas are managed by alembic;
    this is for development and tests.
    """
    from database import models  # noqa: F401

    eng = bind if bind is not None else get_engine()
    Base.metadata.create_all(bind=eng)
    logger.info("Database tables created/verified")
