"""
Job Category Repository - Database access layer for the master category catalog.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict
from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import JobCategory, BillingCategory, BillingDetail
from services.billing_errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class JobCategoryRepository:
    """Repository for master job category operations."""

    def __init__(self, session: Session):
        self.session = session

    def _get(self, category_id: str) -> JobCategory:
        category = self.session.query(JobCategory).filter(
            JobCategory.id == category_id,
            JobCategory.is_hidden == False
        ).first()
        if not category:
            raise NotFoundError(f"Job category {category_id} not found")
        return category

    def _name_taken(self, name: str, exclude_id: str = None) -> bool:
        query = self.session.query(JobCategory).filter(
            func.lower(JobCategory.name) == name.lower()
        )
        if exclude_id:
            query = query.filter(JobCategory.id != exclude_id)
        return query.first() is not None

    def list_categories(self, include_hidden: bool = False) -> List[Dict]:
        """List master categories ordered by sort_order."""
        query = self.session.query(JobCategory)
        if not include_hidden:
            query = query.filter(JobCategory.is_hidden == False)
        categories = query.order_by(JobCategory.sort_order, JobCategory.name).all()
        return [c.to_dict() for c in categories]

    def get_category(self, category_id: str) -> Optional[Dict]:
        """Get a visible master category by ID."""
        category = self.session.query(JobCategory).filter(
            JobCategory.id == category_id,
            JobCategory.is_hidden == False
        ).first()
        return category.to_dict() if category else None

    def create_category(self, name: str, description: str = None,
                        is_default: bool = False) -> Dict:
        """Create a new master category at the end of the list."""
        name = (name or '').strip()
        if not name:
            raise ValidationError("Category name is required", field='name')
        if self._name_taken(name):
            raise ConflictError(f"A category named '{name}' already exists", field='name')

        max_order = self.session.query(func.max(JobCategory.sort_order)).scalar() or 0
        category = JobCategory(
            name=name,
            description=(description or '').strip() or None,
            sort_order=max_order + 1,
            is_default=bool(is_default),
            is_system=False,
            is_hidden=False
        )
        self.session.add(category)
        self.session.flush()
        logger.info(f"Created job category: {category.id} ({name})")
        return category.to_dict()

    def toggle_default(self, category_id: str) -> Dict:
        """Flip is_default. New properties get every default category provisioned."""
        category = self._get(category_id)
        category.is_default = not category.is_default
        category.updated_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Job category {category_id} is_default -> {category.is_default}")
        return category.to_dict()

    def rename_category(self, category_id: str, new_name: str) -> Dict:
        """
        Rename a master category.
        Property billing categories carrying the old name are renamed with it.
        """
        new_name = (new_name or '').strip()
        if not new_name:
            raise ValidationError("Category name is required", field='name')

        category = self._get(category_id)
        if category.name == new_name:
            return category.to_dict()
        if category.is_system:
            raise ValidationError("System categories cannot be renamed", field='name')
        if self._name_taken(new_name, exclude_id=category_id):
            raise ConflictError(f"A category named '{new_name}' already exists", field='name')

        old_name = category.name
        renamed = self.session.query(BillingCategory).filter(
            func.lower(BillingCategory.name) == old_name.lower()
        ).update({BillingCategory.name: new_name, BillingCategory.updated_at: datetime.utcnow()},
                 synchronize_session=False)

        category.name = new_name
        category.updated_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Renamed job category '{old_name}' -> '{new_name}' ({renamed} property categories)")
        return category.to_dict()

    def delete_category(self, category_id: str) -> bool:
        """
        Soft delete a master category.
        Same-named property categories and their line items are removed.
        """
        category = self._get(category_id)
        if category.is_system:
            raise ValidationError("System categories cannot be deleted", field='category_id')

        billing_ids = [row.id for row in self.session.query(BillingCategory.id).filter(
            func.lower(BillingCategory.name) == category.name.lower()
        ).all()]
        if billing_ids:
            self.session.query(BillingDetail).filter(
                BillingDetail.category_id.in_(billing_ids)
            ).delete(synchronize_session=False)
            self.session.query(BillingCategory).filter(
                BillingCategory.id.in_(billing_ids)
            ).delete(synchronize_session=False)

        category.is_hidden = True
        category.is_default = False
        category.updated_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Deleted (hidden) job category: {category_id} ({len(billing_ids)} property categories)")
        return True
