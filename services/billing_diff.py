"""
Billing Diff - Surgical reconciliation of billing line items.

Given the persisted billing_details rows for a property and the rows the
editor wants, work out the minimal set of row mutations:
- rows whose natural key (property, category, unit size) disappeared are deleted by id
- every complete desired row is upserted on the natural key

Nothing is ever wiped and reinserted wholesale.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from services.billing_errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

NATURAL_KEY_COLUMNS = ['property_id', 'category_id', 'unit_size_id']

# Fractional seconds of any width; fromisoformat before 3.11 only takes 3 or 6 digits
_FRACTION_PATTERN = re.compile(r"\.(\d+)(?=[+-]\d{2}:?\d{2}$|$)")


def natural_key(row: Dict[str, Any]) -> str:
    """Build the property|category|unit_size key used for diffing."""
    return '|'.join(str(row.get(column) or '') for column in NATURAL_KEY_COLUMNS)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_amount(value: Any, field: str) -> Optional[Decimal]:
    """
    Parse a money amount coming from the editor (str, int, float or Decimal).
    Blank values return None. Non-numeric or negative values raise ValidationError.
    """
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return amount


def parse_timestamp(value: Any, field: str) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp (a trailing Z is accepted). Blank values
    return None; anything unparseable raises ValidationError.
    """
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO 8601 timestamp", field=field)
    text = value.strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    text = _FRACTION_PATTERN.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO 8601 timestamp, got {value!r}", field=field)


def compute_profit(bill_amount: Decimal, sub_pay_amount: Decimal, is_hourly: bool) -> Optional[Decimal]:
    """Hourly items have no fixed profit; it depends on hours actually worked."""
    if is_hourly:
        return None
    return bill_amount - sub_pay_amount


def prepare_line_item(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize one desired row for persistence.

    Returns None for incomplete rows (no unit size, bill amount or sub pay
    amount); those are left out of the save rather than treated as errors.
    profit_amount is always recomputed here, never taken from the input.
    """
    if _is_blank(row.get('unit_size_id')):
        return None
    bill_amount = parse_amount(row.get('bill_amount'), 'bill_amount')
    sub_pay_amount = parse_amount(row.get('sub_pay_amount'), 'sub_pay_amount')
    if bill_amount is None or sub_pay_amount is None:
        return None

    is_hourly = bool(row.get('is_hourly'))
    prepared = {
        'property_id': row.get('property_id'),
        'category_id': row.get('category_id'),
        'unit_size_id': row.get('unit_size_id'),
        'bill_amount': bill_amount,
        'sub_pay_amount': sub_pay_amount,
        'profit_amount': compute_profit(bill_amount, sub_pay_amount, is_hourly),
        'is_hourly': is_hourly,
    }
    if row.get('sort_order') is not None:
        prepared['sort_order'] = row['sort_order']
    return prepared


def diff_line_items(existing_rows: List[Dict], desired_rows: List[Dict],
                    strict: bool = False) -> Dict[str, Any]:
    """
    Compute the reconciliation plan.

    Args:
        existing_rows: billing_details rows as currently persisted
        desired_rows: rows the editor wants persisted
        strict: raise ConflictError on duplicate natural keys instead of
            letting the later row win

    Returns:
        {'to_upsert': [...], 'to_delete_ids': [...],
         'inserts': int, 'updates': int, 'dropped': int}
    """
    planned: Dict[str, Dict] = {}
    dropped = 0

    for row in desired_rows:
        prepared = prepare_line_item(row)
        if prepared is None:
            dropped += 1
            continue
        key = natural_key(prepared)
        if key in planned:
            if strict:
                raise ConflictError(
                    f"Duplicate line item for unit size {prepared['unit_size_id']} "
                    f"in category {prepared['category_id']}",
                    field='unit_size_id'
                )
            logger.warning(f"Duplicate line item key {key}; keeping the later row")
        planned[key] = prepared

    existing_by_key = {natural_key(r): r for r in existing_rows}

    inserts = sum(1 for key in planned if key not in existing_by_key)

    to_delete_ids = [r['id'] for r in existing_rows if natural_key(r) not in planned]

    if dropped:
        logger.debug(f"Dropped {dropped} incomplete line items from save")

    return {
        'to_upsert': list(planned.values()),
        'to_delete_ids': to_delete_ids,
        'inserts': inserts,
        'updates': len(planned) - inserts,
        'dropped': dropped,
    }
