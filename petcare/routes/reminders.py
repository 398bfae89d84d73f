"""
Reminder scheduler routes - status and manual trigger of the due-reminder scan
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from petcare import get_services

logger = logging.getLogger(__name__)

reminders_bp = Blueprint('reminders', __name__, url_prefix='/api/reminders')


def _trigger_key_valid():
    expected = current_app.config.get('SCHEDULER_TRIGGER_KEY')
    if not expected:
        return True
    provided = request.headers.get('X-Scheduler-Key', '')
    return hmac.compare_digest(provided.encode(), expected.encode())


@reminders_bp.route('/scheduler/status', methods=['GET'])
def get_scheduler_status():
    """Get scheduler status"""
    try:
        status = get_services().scheduler.get_scheduler_status()
        return jsonify({
            'success': True,
            'status': status
        })

    except Exception as e:
        logger.error(f"Error getting scheduler status: {str(e)}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500


@reminders_bp.route('/scheduler/trigger', methods=['POST'])
def trigger_scheduler():
    """Manually trigger reminder check"""
    if not _trigger_key_valid():
        return jsonify({
            'success': False,
            'error': 'Invalid scheduler key'
        }), 403

    try:
        result = get_services().scheduler.trigger_immediate_check()
        return jsonify({
            'success': True,
            'result': result
        })

    except Exception as e:
        logger.error(f"Error triggering scheduler: {str(e)}")
        return jsonify({
            'success': False,
            'error': str(e)
        }), 500
