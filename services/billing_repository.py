"""
Property Billing Repository - Load, attach and remove billing categories for one property.

Reads go through the RowStore; the full save lives in services.billing_save.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from services.billing_categories import (
    get_billing_category_display_name,
    get_category_badge_info,
    group_billing_categories,
    is_default_category,
    normalize_name,
    reorder_categories,
    reorder_line_items,
    should_show_in_extra_charges_dropdown,
    should_show_in_work_order_section,
    sort_categories,
)
from services.billing_errors import ConflictError, NotFoundError, ValidationError
from services.billing_save import BillingSaveOrchestrator

logger = logging.getLogger(__name__)


def serialize_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a row JSON friendly: Decimal -> float, datetime -> ISO string."""
    if row is None:
        return None
    data = {}
    for key, value in row.items():
        if isinstance(value, Decimal):
            data[key] = float(value)
        elif isinstance(value, datetime):
            data[key] = value.isoformat()
        else:
            data[key] = value
    return data


class PropertyBillingRepository:
    """Repository for one property's billing categories and line items."""

    def __init__(self, orchestrator: BillingSaveOrchestrator, property_id: str):
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.property_id = property_id

    def get_property(self) -> Dict:
        rows = self.store.select('properties', {'id': self.property_id})
        if not rows:
            raise NotFoundError(f"Property {self.property_id} not found")
        return rows[0]

    def list_categories(self) -> List[Dict]:
        return sort_categories(
            self.store.select('billing_categories', {'property_id': self.property_id})
        )

    def list_line_items(self) -> List[Dict]:
        order_by = ['sort_order'] if self.store.supports_line_item_sort_order else None
        return self.store.select('billing_details', {'property_id': self.property_id},
                                 order_by=order_by)

    def load(self) -> Dict[str, Any]:
        """
        Everything the billing editor needs for one property.
        Missing default categories are provisioned on the way (best effort).
        """
        prop = self.get_property()
        global_defaults = self.orchestrator.load_global_defaults()
        default_names = [d['name'] for d in global_defaults]

        categories = self.list_categories()
        provisioned = self.orchestrator.provision_defaults(self.property_id, categories, global_defaults)
        if provisioned:
            categories = sort_categories(categories + provisioned)

        line_items = self.list_line_items()
        legacy_item = self.orchestrator.provision_legacy_extra_charge_item(
            self.property_id, categories, line_items
        )
        if legacy_item:
            line_items = self.list_line_items()

        grouped: Dict[str, List[Dict]] = {c['id']: [] for c in categories}
        for item in line_items:
            grouped.setdefault(item['category_id'], []).append(serialize_row(item))

        decorated = [self._decorate(c, default_names) for c in categories]
        groups = group_billing_categories(decorated)

        return {
            'property': serialize_row(prop),
            'categories': decorated,
            'groups': {name: [c['id'] for c in members] for name, members in groups.items()},
            'line_items': grouped,
            'unit_sizes': [serialize_row(u) for u in
                           self.store.select('unit_sizes', order_by=['unit_size_label'])],
            'job_categories': self._attachable_job_categories(categories),
            'provisioned': len(provisioned),
            'supports_line_item_sort_order': self.store.supports_line_item_sort_order,
        }

    def _decorate(self, category: Dict, default_names: List[str]) -> Dict:
        data = serialize_row(category)
        data['display_name'] = get_billing_category_display_name(category)
        data['badge'] = get_category_badge_info(category, default_names)
        data['is_default'] = is_default_category(category['name'], default_names)
        data['show_in_work_order'] = should_show_in_work_order_section(category)
        data['show_in_extra_charges'] = should_show_in_extra_charges_dropdown(category)
        return data

    def _attachable_job_categories(self, categories: List[Dict]) -> List[Dict]:
        attached = {normalize_name(c['name']) for c in categories}
        masters = self.store.select('job_categories', {'is_hidden': False}, order_by=['sort_order'])
        return [
            dict(serialize_row(m), attached=normalize_name(m['name']) in attached)
            for m in masters
        ]

    # ------------------------------------------------------------------
    # Attach / remove
    # ------------------------------------------------------------------

    def _ensure_not_attached(self, name: str):
        if any(normalize_name(c['name']) == normalize_name(name) for c in self.list_categories()):
            raise ConflictError("This category is already added to this property", field='name')

    def attach_category(self, job_category_id: str) -> Dict:
        """Attach an existing master category to the property."""
        self.get_property()
        rows = self.store.select('job_categories', {'id': job_category_id})
        if not rows or rows[0].get('is_hidden'):
            raise NotFoundError("Selected category not found", field='job_category_id')
        master = rows[0]
        self._ensure_not_attached(master['name'])

        created = self.store.insert('billing_categories', [{
            'property_id': self.property_id,
            'name': master['name'],
            'description': master.get('description'),
            'sort_order': master.get('sort_order') or 0,
            'include_in_work_order': True,
            'is_extra_charge': False,
        }])[0]
        logger.info(f"Attached category '{master['name']}' to property {self.property_id}")
        return serialize_row(created)

    def create_and_attach_category(self, name: str, description: Optional[str] = None) -> Dict:
        """Create a new master category, then attach it to the property."""
        name = (name or '').strip()
        if not name:
            raise ValidationError("Please enter a category name", field='name')
        self.get_property()

        masters = self.store.select('job_categories')
        if any(normalize_name(m['name']) == normalize_name(name) for m in masters):
            raise ConflictError(
                "This category already exists in the master list. "
                "Please select it from the dropdown or choose a different name.",
                field='name'
            )
        self._ensure_not_attached(name)

        visible = [m for m in masters if not m.get('is_hidden')]
        master = self.store.insert('job_categories', [{
            'name': name,
            'description': (description or '').strip() or None,
            'sort_order': len(visible) + 1,
            'is_default': False,
            'is_system': False,
            'is_hidden': False,
        }])[0]
        logger.info(f"Created master category '{name}'")
        return self.attach_category(master['id'])

    def delete_category(self, category_id: str) -> bool:
        """Remove a category and its line items from the property. Defaults cannot be removed."""
        rows = self.store.select('billing_categories',
                                 {'id': category_id, 'property_id': self.property_id})
        if not rows:
            raise NotFoundError(f"Billing category {category_id} not found")
        category = rows[0]

        default_names = [d['name'] for d in self.orchestrator.load_global_defaults()]
        if is_default_category(category['name'], default_names):
            raise ValidationError(
                f"'{category['name']}' is a default category and cannot be removed",
                field='category_id'
            )

        removed = self.store.delete('billing_details', {'category_id': category_id})
        self.store.delete('billing_categories', {'id': category_id, 'property_id': self.property_id})
        logger.info(
            f"Deleted billing category {category_id} ({removed} line items) from property {self.property_id}"
        )
        return True

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def reorder_categories(self, moved_id: str, target_id: str) -> List[Dict]:
        """Apply a drag-and-drop move and persist the renumbered sort orders."""
        reordered = reorder_categories(self.list_categories(), moved_id, target_id)
        for category in reordered:
            self.store.update('billing_categories',
                              {'id': category['id'], 'property_id': self.property_id},
                              {'sort_order': category['sort_order']})
        logger.info(f"Reordered {len(reordered)} billing categories for property {self.property_id}")
        return [serialize_row(c) for c in reordered]

    def reorder_line_items(self, category_id: str, moved_id: str, target_id: str) -> List[Dict]:
        """
        Reorder one category's line items. Positions are only persisted when
        billing_details has a sort_order column.
        """
        items = [i for i in self.list_line_items() if i['category_id'] == category_id]
        reordered = reorder_line_items(items, moved_id, target_id)
        if self.store.supports_line_item_sort_order:
            for item in reordered:
                self.store.update('billing_details', {'id': item['id']},
                                  {'sort_order': item['sort_order']})
        return [serialize_row(i) for i in reordered]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_billing_detail(self, category_name: str, unit_size_id: Optional[str] = None,
                            unit_size_label: Optional[str] = None) -> Optional[Dict]:
        """Find the line item for a category (by name) and unit size (by id or label)."""
        category = next((c for c in self.list_categories()
                         if normalize_name(c['name']) == normalize_name(category_name)), None)
        if category is None:
            return None

        if not unit_size_id and unit_size_label:
            sizes = self.store.select('unit_sizes', {'unit_size_label': unit_size_label})
            unit_size_id = sizes[0]['id'] if sizes else None

        filters = {'property_id': self.property_id, 'category_id': category['id']}
        if unit_size_id:
            filters['unit_size_id'] = unit_size_id
        rows = self.store.select('billing_details', filters)
        if not rows:
            return None

        row = rows[0]
        return serialize_row({
            'id': row['id'],
            'bill_amount': row.get('bill_amount') or 0,
            'sub_pay_amount': row.get('sub_pay_amount') or 0,
            'profit_amount': row.get('profit_amount'),
            'is_hourly': bool(row.get('is_hourly')),
        })
