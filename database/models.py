"""
SQLAlchemy models for the property billing service.
Defines the master job category catalog, property-level billing categories,
unit sizes and the per-unit-size billing line items.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, String, Text, Integer, Numeric, Boolean, DateTime,
    ForeignKey, Index, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from database.connection import Base


def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


def _amount(value):
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


# =============================================================================
# PROPERTIES
# =============================================================================

class Property(Base):
    """Managed property. Only the fields the billing screens need."""
    __tablename__ = 'properties'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    billing_categories = relationship("BillingCategory", back_populates="billing_property")

    def to_dict(self):
        return {
            'id': self.id,
            'property_name': self.property_name,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# MASTER CATALOG
# =============================================================================

class JobCategory(Base):
    """
    Global job category catalog.
    Never hard-deleted: is_hidden marks a soft delete so historical jobs
    and billing rows keep resolving by name.
    """
    __tablename__ = 'job_categories'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    sort_order = Column(Integer, default=0, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    is_hidden = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_job_categories_name_lower', func.lower(name), unique=True),
        Index('ix_job_categories_sort_order', 'sort_order'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'sort_order': self.sort_order,
            'is_default': bool(self.is_default),
            'is_system': bool(self.is_system),
            'is_hidden': bool(self.is_hidden),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class UnitSize(Base):
    """Global unit size reference list (e.g. '1 Bedroom')."""
    __tablename__ = 'unit_sizes'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    unit_size_label = Column(String(100), unique=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'unit_size_label': self.unit_size_label
        }


# =============================================================================
# PROPERTY BILLING
# =============================================================================

class BillingCategory(Base):
    """
    Property-level billing category.
    The name is copied from a JobCategory when attached; it is not a live
    reference. include_in_work_order and is_extra_charge are mutually exclusive.
    """
    __tablename__ = 'billing_categories'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey('properties.id'), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    sort_order = Column(Integer, default=0, nullable=False)
    include_in_work_order = Column(Boolean, default=True, nullable=False)
    is_extra_charge = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    billing_property = relationship("Property", back_populates="billing_categories")
    billing_details = relationship("BillingDetail", back_populates="category")

    __table_args__ = (
        Index('ix_billing_categories_property', 'property_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'property_id': self.property_id,
            'name': self.name,
            'description': self.description,
            'sort_order': self.sort_order,
            'include_in_work_order': bool(self.include_in_work_order),
            'is_extra_charge': bool(self.is_extra_charge),
            'archived_at': _iso(self.archived_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class BillingDetail(Base):
    """
    Billing line item for one category and unit size at one property.
    (property_id, category_id, unit_size_id) is the natural key.
    """
    __tablename__ = 'billing_details'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey('properties.id'), nullable=False)
    category_id = Column(String(36), ForeignKey('billing_categories.id'), nullable=False)
    unit_size_id = Column(String(36), ForeignKey('unit_sizes.id'), nullable=False)
    bill_amount = Column(Numeric(10, 2), nullable=False, default=0)
    sub_pay_amount = Column(Numeric(10, 2), nullable=False, default=0)
    profit_amount = Column(Numeric(10, 2))
    is_hourly = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("BillingCategory", back_populates="billing_details")

    __table_args__ = (
        UniqueConstraint('property_id', 'category_id', 'unit_size_id',
                         name='uq_billing_details_natural_key'),
        Index('ix_billing_details_property', 'property_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'property_id': self.property_id,
            'category_id': self.category_id,
            'unit_size_id': self.unit_size_id,
            'bill_amount': _amount(self.bill_amount),
            'sub_pay_amount': _amount(self.sub_pay_amount),
            'profit_amount': _amount(self.profit_amount),
            'is_hourly': bool(self.is_hourly),
            'sort_order': self.sort_order,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
