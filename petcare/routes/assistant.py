"""
AI assistant routes
"""

import logging

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError

from petcare import get_services
from petcare.middleware.auth import require_auth
from petcare.schemas.summary import SummaryRequest

logger = logging.getLogger(__name__)

assistant_bp = Blueprint('assistant', __name__, url_prefix='/api/ai')


@assistant_bp.route('/summary', methods=['POST'])
@require_auth
def generate_summary():
    """Generate a summary of one pet's records for the requested task"""
    try:
        summary_request = SummaryRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Invalid summary request',
            'details': e.errors(include_url=False, include_context=False)
        }), 400

    services = get_services()
    try:
        context = services.context_store.load_pet_context(g.user_id, summary_request.pet_id)
    except Exception as e:
        logger.error(f"Error loading pet {summary_request.pet_id} for user {g.user_id}: {str(e)}")
        return jsonify({'success': False, 'error': 'Failed to load pet records'}), 500

    if context is None:
        return jsonify({'success': False, 'error': 'Pet not found'}), 404

    try:
        summary = services.summary_service.generate(
            summary_request.task, context, summary_request.prompt
        )
    except Exception as e:
        logger.error(f"Error generating {summary_request.task.value} summary: {str(e)}", exc_info=True)
        return jsonify({'success': False, 'error': 'Failed to generate summary'}), 500

    return jsonify({'success': True, 'summary': summary})
