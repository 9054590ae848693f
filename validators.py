"""
Input Validation & Sanitization Utilities
Provides validation for billing API requests before they reach the services
"""
import re
from typing import Dict, Any, List, Optional, Tuple
import logging

from services.billing_diff import parse_timestamp
from services.billing_errors import ValidationError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 2000

# Regex patterns
UUID_PATTERN = re.compile(r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$')


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None or data[field] == '']

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_uuid(value: Any) -> Tuple[bool, Optional[str]]:
    """Validate a UUID string id"""
    if not value or not isinstance(value, str):
        return False, "ID must be a non-empty string"

    if not UUID_PATTERN.match(value):
        return False, "Invalid ID format"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Args:
        value: String to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Args:
        value: Number to validate
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing null bytes, trimming and truncating

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return str(value)

    sanitized = value.replace('\x00', '').strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def _validate_optional_bool(data: Dict[str, Any], field: str) -> Optional[str]:
    if field in data and data[field] is not None and not isinstance(data[field], bool):
        return f"{field} must be a boolean"
    return None


def validate_category_payload(category: Any, idx: int) -> Tuple[bool, Optional[str]]:
    """
    Validate one category object of a save request

    Args:
        category: Category dictionary from the request
        idx: Position in the categories array, for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(category, dict):
        return False, f"Category {idx} must be an object"

    is_valid, error = validate_string_length(category.get('name') or '', min_length=1,
                                             max_length=MAX_NAME_LENGTH)
    if not is_valid:
        return False, f"Category {idx} invalid name: {error}"

    for field in ('is_extra_charge', 'include_in_work_order'):
        error = _validate_optional_bool(category, field)
        if error:
            return False, f"Category {idx}: {error}"

    if 'sort_order' in category and category['sort_order'] is not None:
        is_valid, error = validate_number_range(category['sort_order'], min_value=0)
        if not is_valid:
            return False, f"Category {idx} invalid sort_order: {error}"

    if category.get('archived_at'):
        try:
            parse_timestamp(category['archived_at'], 'archived_at')
        except ValidationError as e:
            return False, f"Category {idx}: {e.message}"

    return True, None


def validate_save_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a full billing save request

    Expected shape:
        {'categories': [...], 'line_items': {category_id: [...]}}

    Amount values are checked by the save itself so that blank and
    incomplete rows keep their drop-not-fail behaviour.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    categories = data.get('categories')
    if not isinstance(categories, list):
        return False, "categories must be an array"

    for idx, category in enumerate(categories):
        is_valid, error = validate_category_payload(category, idx)
        if not is_valid:
            return False, error

    line_items = data.get('line_items', {})
    if not isinstance(line_items, dict):
        return False, "line_items must be an object keyed by category id"

    for category_id, items in line_items.items():
        if not isinstance(items, list):
            return False, f"line_items for category {category_id} must be an array"
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                return False, f"Line item {idx} in category {category_id} must be an object"
            error = _validate_optional_bool(item, 'is_hourly')
            if error:
                return False, f"Line item {idx} in category {category_id}: {error}"

    return True, None


def validate_attach_category_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate an attach-category request: either an existing job_category_id
    or a new name (with optional description), not both

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    name = data.get('name')
    if name is not None and not isinstance(name, str):
        return False, "name must be a string"

    has_id = bool(data.get('job_category_id'))
    has_name = bool((name or '').strip())

    if has_id and has_name:
        return False, "Provide either job_category_id or name, not both"
    if not has_id and not has_name:
        return False, "Please select a category or enter a new category name"

    if has_id:
        return validate_uuid(data['job_category_id'])

    is_valid, error = validate_string_length(data['name'], min_length=1, max_length=MAX_NAME_LENGTH)
    if not is_valid:
        return False, f"Invalid name: {error}"

    if data.get('description'):
        is_valid, error = validate_string_length(data['description'], max_length=MAX_DESCRIPTION_LENGTH)
        if not is_valid:
            return False, f"Invalid description: {error}"

    return True, None


def validate_reorder_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a drag-and-drop reorder request

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    is_valid, error = validate_required_fields(data, ['moved_id', 'target_id'])
    if not is_valid:
        return False, error

    for field in ('moved_id', 'target_id'):
        if not isinstance(data[field], str):
            return False, f"{field} must be a string"

    if 'category_id' in data and data['category_id'] is not None and not isinstance(data['category_id'], str):
        return False, "category_id must be a string"

    return True, None


def validate_job_category_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a master job category create/rename request

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    is_valid, error = validate_required_fields(data, ['name'])
    if not is_valid:
        return False, error

    is_valid, error = validate_string_length(data['name'], min_length=1, max_length=MAX_NAME_LENGTH)
    if not is_valid:
        return False, f"Invalid name: {error}"

    if not data['name'].strip():
        return False, "Invalid name: Value must not be blank"

    if data.get('description'):
        is_valid, error = validate_string_length(data['description'], max_length=MAX_DESCRIPTION_LENGTH)
        if not is_valid:
            return False, f"Invalid description: {error}"

    error = _validate_optional_bool(data, 'is_default')
    if error:
        return False, error

    return True, None


def format_success_response(data: Any, message: str = "Success") -> Dict[str, Any]:
    """
    Format success response for consistent API responses

    Args:
        data: Response data
        message: Success message

    Returns:
        Success response dictionary
    """
    return {
        'success': True,
        'message': message,
        'data': data
    }
