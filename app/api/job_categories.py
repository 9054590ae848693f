"""
Job Category Routes Blueprint

Admin of the master category catalog:
- /api/job-categories: List/create categories
- /api/job-categories/<category_id>: Rename/delete a category
- /api/job-categories/<category_id>/default: Toggle the default flag
- /api/unit-sizes: Unit size reference list
"""

from flask import Blueprint, request, jsonify, current_app
import logging

from database.connection import get_db_session
from database.models import UnitSize
from services.billing_errors import ValidationError
from services.job_category_repository import JobCategoryRepository
from validators import validate_job_category_request, sanitize_string, format_success_response

logger = logging.getLogger(__name__)

# Create blueprint
job_categories_bp = Blueprint('job_categories_bp', __name__)


def _validated_body():
    data = request.get_json(silent=True)
    is_valid, error = validate_job_category_request(data)
    if not is_valid:
        raise ValidationError(error, field='name')
    return data


@job_categories_bp.route('/api/job-categories', methods=['GET', 'POST'])
def handle_job_categories():
    """Get all categories or create a new one"""
    with get_db_session(current_app.session_factory) as session:
        repo = JobCategoryRepository(session)

        if request.method == 'GET':
            include_hidden = request.args.get('include_hidden') == 'true'
            return jsonify({'success': True, 'categories': repo.list_categories(include_hidden)})

        data = _validated_body()
        category = repo.create_category(sanitize_string(data['name']), data.get('description'),
                                        is_default=data.get('is_default', False))
        return jsonify(format_success_response(category, 'Category created')), 201


@job_categories_bp.route('/api/job-categories/<category_id>', methods=['PUT', 'DELETE'])
def handle_job_category(category_id):
    """Rename or delete a category"""
    with get_db_session(current_app.session_factory) as session:
        repo = JobCategoryRepository(session)

        if request.method == 'DELETE':
            repo.delete_category(category_id)
            return jsonify({'success': True, 'message': 'Category deleted'})

        data = _validated_body()
        category = repo.rename_category(category_id, sanitize_string(data['name']))
        return jsonify(format_success_response(category, 'Category updated'))


@job_categories_bp.route('/api/job-categories/<category_id>/default', methods=['POST'])
def toggle_default(category_id):
    """Toggle whether the category is provisioned for every property"""
    with get_db_session(current_app.session_factory) as session:
        category = JobCategoryRepository(session).toggle_default(category_id)
        return jsonify(format_success_response(category, 'Default updated'))


@job_categories_bp.route('/api/unit-sizes', methods=['GET'])
def list_unit_sizes():
    """Get the unit size reference list"""
    with get_db_session(current_app.session_factory) as session:
        sizes = session.query(UnitSize).order_by(UnitSize.unit_size_label).all()
        return jsonify({'success': True, 'unit_sizes': [s.to_dict() for s in sizes]})
