"""
Billing Errors - Exception hierarchy shared by the billing services.

Every failure that can leave the billing core is one of four kinds:
- ValidationError: bad flags or malformed line items (nothing was written)
- PersistenceError: the row-store call failed (safe to retry the whole save)
- NotFoundError: a property/category expected at save time is missing
- ConflictError: duplicate natural key or duplicate category name
"""

from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for billing failures surfaced to callers."""

    kind = 'BillingError'
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None,
                 stage: Optional[str] = None):
        self.message = message
        self.field = field
        self.stage = stage
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': False,
            'error': self.kind,
            'message': self.message,
            'retryable': self.retryable,
        }
        if self.field:
            data['field'] = self.field
        if self.stage:
            data['stage'] = self.stage
        return data


class ValidationError(BillingError):
    """Raised when input fails validation before anything is persisted."""
    kind = 'ValidationError'


class PersistenceError(BillingError):
    """Raised when a row-store call fails. The message is the driver's, verbatim."""
    kind = 'PersistenceError'
    retryable = True


class NotFoundError(BillingError):
    """Raised when an expected property or category is missing."""
    kind = 'NotFoundError'


class ConflictError(BillingError):
    """Raised on a duplicate natural key or category name."""
    kind = 'ConflictError'


__all__ = [
    'BillingError',
    'ValidationError',
    'PersistenceError',
    'NotFoundError',
    'ConflictError',
]
