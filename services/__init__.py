"""
Services package for the property billing service.
Contains the billing core (validation, diff, save orchestration) and
repository classes for database access.
"""

from services.billing_errors import (
    BillingError,
    ValidationError,
    PersistenceError,
    NotFoundError,
    ConflictError
)
from services.row_store import RowStore, SQLAlchemyRowStore
from services.billing_save import BillingSaveOrchestrator, SaveQueue, AutoSaveScheduler
from services.billing_repository import PropertyBillingRepository
from services.billing_session import BillingEditSession
from services.job_category_repository import JobCategoryRepository

__all__ = [
    # Errors
    'BillingError',
    'ValidationError',
    'PersistenceError',
    'NotFoundError',
    'ConflictError',
    # Core
    'RowStore',
    'SQLAlchemyRowStore',
    'BillingSaveOrchestrator',
    'SaveQueue',
    'AutoSaveScheduler',
    'BillingEditSession',
    # Repositories
    'PropertyBillingRepository',
    'JobCategoryRepository'
]
