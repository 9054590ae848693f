"""
Database package for the property billing service.
Provides SQLAlchemy models, connection management, and session handling.
"""

from database.connection import (
    Base,
    build_engine,
    get_engine,
    get_session_factory,
    get_db_session,
    init_db
)

from database.models import (
    Property,
    JobCategory,
    UnitSize,
    BillingCategory,
    BillingDetail
)

__all__ = [
    # Connection
    'Base',
    'build_engine',
    'get_engine',
    'get_session_factory',
    'get_db_session',
    'init_db',
    # Models
    'Property',
    'JobCategory',
    'UnitSize',
    'BillingCategory',
    'BillingDetail'
]
