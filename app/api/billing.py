"""
Property Billing Routes Blueprint

Handles a property's billing setup:
- /api/properties/<property_id>/billing: Load / save the full billing setup
- /api/properties/<property_id>/billing/categories: Attach a category
- /api/properties/<property_id>/billing/categories/<category_id>: Remove a category
- /api/properties/<property_id>/billing/categories/reorder: Drag-and-drop ordering
- /api/properties/<property_id>/billing/autosave: Debounced save of a draft
- /api/properties/<property_id>/billing/flush: Wait for pending saves
- /api/properties/<property_id>/billing/lookup: Rate for a category and unit size

Billing errors raised here are turned into JSON responses by the
handlers registered in security.py.
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from flask import Blueprint, request, jsonify, current_app
import logging

from services.billing_errors import ValidationError
from services.billing_repository import PropertyBillingRepository
from validators import (
    validate_save_request,
    validate_attach_category_request,
    validate_reorder_request,
    sanitize_string,
    format_success_response
)

logger = logging.getLogger(__name__)

# Create blueprint
billing_bp = Blueprint('billing_bp', __name__)


def _repository(property_id):
    return PropertyBillingRepository(current_app.billing_orchestrator, property_id)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be JSON")
    return data


def _check(result):
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error)


# ============================================================================
# LOAD / SAVE
# ============================================================================

@billing_bp.route('/api/properties/<property_id>/billing', methods=['GET'])
def get_billing(property_id):
    """Load categories, line items and reference lists for a property"""
    return jsonify(format_success_response(_repository(property_id).load()))


@billing_bp.route('/api/properties/<property_id>/billing', methods=['PUT'])
def save_billing(property_id):
    """Run a full save through the property's save queue"""
    data = _json_body()
    _check(validate_save_request(data))

    future = current_app.save_queue.submit(property_id, data['categories'], data.get('line_items') or {})
    try:
        result = future.result(timeout=current_app.config.get('BILLING_SAVE_FLUSH_TIMEOUT'))
    except FutureTimeoutError:
        logger.info(f"Save for property {property_id} still queued behind an in-flight save")
        return jsonify({
            'success': True,
            'queued': True,
            'message': 'Save queued behind an in-flight save'
        }), 202

    return jsonify(result), 200


@billing_bp.route('/api/properties/<property_id>/billing/autosave', methods=['POST'])
def autosave_billing(property_id):
    """Schedule a debounced save of the posted draft"""
    data = _json_body()
    _check(validate_save_request(data))

    categories, line_items = data['categories'], data.get('line_items') or {}
    current_app.autosave.schedule(property_id, lambda: (categories, line_items))
    return jsonify({
        'success': True,
        'scheduled': True,
        'delay_seconds': current_app.autosave.delay_seconds
    }), 202


@billing_bp.route('/api/properties/<property_id>/billing/flush', methods=['POST'])
def flush_billing(property_id):
    """Save any pending auto-save now and wait for in-flight saves to finish"""
    timeout = current_app.config.get('BILLING_SAVE_FLUSH_TIMEOUT')
    future = current_app.autosave.flush_now(property_id)
    idle = current_app.save_queue.wait_idle(property_id, timeout)

    if future is not None and future.done() and future.exception() is not None:
        raise future.exception()

    return jsonify({
        'success': idle,
        'flushed': future is not None,
        'message': 'All changes saved' if idle else 'Timed out waiting for save to finish'
    }), 200 if idle else 504


# ============================================================================
# CATEGORIES
# ============================================================================

@billing_bp.route('/api/properties/<property_id>/billing/categories', methods=['POST'])
def attach_category(property_id):
    """Attach an existing master category, or create a new one and attach it"""
    data = _json_body()
    _check(validate_attach_category_request(data))

    repo = _repository(property_id)
    if data.get('job_category_id'):
        category = repo.attach_category(data['job_category_id'])
    else:
        description = data.get('description')
        category = repo.create_and_attach_category(
            sanitize_string(data['name']), sanitize_string(description) if description else None
        )

    return jsonify(format_success_response(category, 'Category added')), 201


@billing_bp.route('/api/properties/<property_id>/billing/categories/<category_id>', methods=['DELETE'])
def delete_category(property_id, category_id):
    """Remove a non-default category and its line items"""
    _repository(property_id).delete_category(category_id)
    return jsonify({'success': True, 'message': 'Category removed'}), 200


@billing_bp.route('/api/properties/<property_id>/billing/categories/reorder', methods=['POST'])
def reorder(property_id):
    """
    Move one category (or one line item when category_id is given)
    to the target's position
    """
    data = _json_body()
    _check(validate_reorder_request(data))

    repo = _repository(property_id)
    repo.get_property()
    if data.get('category_id'):
        items = repo.reorder_line_items(data['category_id'], data['moved_id'], data['target_id'])
        return jsonify(format_success_response({
            'line_items': items,
            'persisted': repo.store.supports_line_item_sort_order
        }, 'Line items reordered'))

    categories = repo.reorder_categories(data['moved_id'], data['target_id'])
    return jsonify(format_success_response({'categories': categories}, 'Categories reordered'))


# ============================================================================
# LOOKUP
# ============================================================================

@billing_bp.route('/api/properties/<property_id>/billing/lookup', methods=['GET'])
def lookup_billing_detail(property_id):
    """Find the rate for ?category=<name>&unit_size_id=<id> (or &unit_size=<label>)"""
    category_name = request.args.get('category', '').strip()
    if not category_name:
        raise ValidationError("category query parameter is required", field='category')

    detail = _repository(property_id).find_billing_detail(
        category_name,
        unit_size_id=request.args.get('unit_size_id'),
        unit_size_label=request.args.get('unit_size')
    )
    return jsonify({'success': True, 'found': detail is not None, 'data': detail}), 200
