"""
Billing Categories - Pure rules for property-level billing categories.

- Flag validation (extra charge vs. work order section are mutually exclusive)
- Display helpers used by the billing screens and work order forms
- Default category provisioning (which master defaults a property is missing)
- Drag-and-drop reordering with contiguous 1-based sort orders

Nothing in this module touches the row store.
"""

import logging
from typing import Dict, Iterable, List, Optional

from services.billing_errors import NotFoundError

logger = logging.getLogger(__name__)

FLAG_CONFLICT_MESSAGE = (
    'A category cannot be both an Extra Charge and shown in Work Order. '
    'Please choose one option.'
)

# Fallback when the master catalog is not at hand
SYSTEM_DEFAULT_CATEGORY_NAMES = ('Labor', 'Materials', 'Paint', 'Repair')

LEGACY_EXTRA_CHARGES_NAME = 'Extra Charges'
LEGACY_EXTRA_CHARGES_DESCRIPTION = 'Additional charges for special services or materials'
LEGACY_EXTRA_CHARGES_SORT_ORDER = 4


def normalize_name(name: Optional[str]) -> str:
    return (name or '').strip().lower()


# ============================================================================
# FLAG VALIDATION
# ============================================================================

def validate_category_flags(is_extra_charge: bool, include_in_work_order: bool) -> Optional[str]:
    """
    Validate category flags for mutual exclusivity.
    Returns an error message if invalid, None if valid.
    """
    if is_extra_charge and include_in_work_order:
        return FLAG_CONFLICT_MESSAGE
    return None


# ============================================================================
# DISPLAY HELPERS
# ============================================================================

def is_default_category(name: str, default_names: Optional[Iterable[str]] = None) -> bool:
    """Check if a category name is one of the defaults (case-insensitive)."""
    names = SYSTEM_DEFAULT_CATEGORY_NAMES if default_names is None else default_names
    target = normalize_name(name)
    return any(normalize_name(n) == target for n in names)


def get_billing_category_display_name(category: Dict) -> str:
    """
    Display name for a billing category:
    - archived: "{name} (Archived)"
    - extra charge: "Extra Charges - {name}"
    - otherwise: "{name}"
    """
    if category.get('archived_at'):
        return f"{category['name']} (Archived)"
    if category.get('is_extra_charge'):
        return f"Extra Charges - {category['name']}"
    return category['name']


def should_show_in_work_order_section(category: Dict) -> bool:
    return (
        category.get('include_in_work_order') is True
        and category.get('is_extra_charge') is not True
        and not category.get('archived_at')
    )


def should_show_in_extra_charges_dropdown(category: Dict) -> bool:
    return category.get('is_extra_charge') is True and not category.get('archived_at')


def group_billing_categories(categories: List[Dict]) -> Dict[str, List[Dict]]:
    """Group categories into active, extra_charges and archived."""
    return {
        'active': [c for c in categories
                   if not c.get('is_extra_charge') and not c.get('archived_at')],
        'extra_charges': [c for c in categories
                          if c.get('is_extra_charge') and not c.get('archived_at')],
        'archived': [c for c in categories if c.get('archived_at') is not None],
    }


def get_category_badge_info(category: Dict,
                            default_names: Optional[Iterable[str]] = None) -> Optional[Dict[str, str]]:
    if category.get('archived_at'):
        return {'variant': 'outline', 'text': 'Archived'}
    if category.get('is_extra_charge'):
        return {'variant': 'secondary', 'text': 'Extra Charge'}
    if is_default_category(category.get('name'), default_names):
        return {'variant': 'default', 'text': 'System Default'}
    return None


# ============================================================================
# DEFAULT PROVISIONING
# ============================================================================

def compute_missing_defaults(property_id: str, global_defaults: List[Dict],
                             current_categories: List[Dict],
                             include_legacy_extra_charges: bool = False) -> List[Dict]:
    """
    Stage creation records for default master categories the property lacks.

    Matching is by case-insensitive name. Hidden master categories and ones
    not flagged is_default are ignored. Returned rows are unsaved.
    """
    present = {normalize_name(c.get('name')) for c in current_categories}
    staged = []

    for master in global_defaults:
        if not master.get('is_default') or master.get('is_hidden'):
            continue
        key = normalize_name(master.get('name'))
        if key in present:
            continue
        present.add(key)
        staged.append({
            'property_id': property_id,
            'name': master['name'],
            'description': master.get('description'),
            'sort_order': master.get('sort_order') or 0,
            'include_in_work_order': True,
            'is_extra_charge': False,
            'archived_at': None,
        })

    if include_legacy_extra_charges and normalize_name(LEGACY_EXTRA_CHARGES_NAME) not in present:
        staged.append({
            'property_id': property_id,
            'name': LEGACY_EXTRA_CHARGES_NAME,
            'description': LEGACY_EXTRA_CHARGES_DESCRIPTION,
            'sort_order': LEGACY_EXTRA_CHARGES_SORT_ORDER,
            'include_in_work_order': False,
            'is_extra_charge': True,
            'archived_at': None,
        })

    if staged:
        logger.debug(f"Property {property_id} is missing {len(staged)} default categories")
    return staged


# ============================================================================
# REORDERING
# ============================================================================

def move_item(items: List[Dict], moved_id: str, target_id: str, key: str = 'id') -> List[Dict]:
    """
    Move one item to the position the target occupies.
    The moved item is removed first and reinserted at the target's
    original index. Returns a new list; the input is left untouched.
    """
    ordered = list(items)
    moved_index = next((i for i, item in enumerate(ordered) if item.get(key) == moved_id), None)
    target_index = next((i for i, item in enumerate(ordered) if item.get(key) == target_id), None)

    if moved_index is None:
        raise NotFoundError(f"Item {moved_id} not found", field=key)
    if target_index is None:
        raise NotFoundError(f"Item {target_id} not found", field=key)

    if moved_index != target_index:
        moved = ordered.pop(moved_index)
        ordered.insert(target_index, moved)
    return ordered


def assign_sort_orders(items: List[Dict]) -> List[Dict]:
    """Copy items with sort_order = position + 1."""
    return [dict(item, sort_order=index + 1) for index, item in enumerate(items)]


def reorder_categories(categories: List[Dict], moved_id: str, target_id: str) -> List[Dict]:
    """Apply a drag-and-drop move and renumber the whole list 1..N."""
    return assign_sort_orders(move_item(categories, moved_id, target_id))


def reorder_line_items(line_items: List[Dict], moved_id: str, target_id: str) -> List[Dict]:
    """Same move semantics as categories, within one category's line items."""
    return assign_sort_orders(move_item(line_items, moved_id, target_id))


def sort_categories(categories: List[Dict]) -> List[Dict]:
    return sorted(categories, key=lambda c: (c.get('sort_order') or 0, normalize_name(c.get('name'))))
