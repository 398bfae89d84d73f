"""
Device token routes - register, list and remove push destinations
"""

import logging

from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError

from petcare import get_services
from petcare.middleware.auth import require_auth
from petcare.schemas.reminder import DeviceTokenCreate

logger = logging.getLogger(__name__)

devices_bp = Blueprint('devices', __name__, url_prefix='/api/devices')


@devices_bp.route('', methods=['GET'])
@require_auth
def list_devices():
    """List the authenticated user's device tokens"""
    try:
        tokens = get_services().token_store.list_tokens(g.user_id)
        return jsonify({
            'success': True,
            'devices': [token.model_dump() for token in tokens],
            'count': len(tokens)
        })

    except Exception as e:
        logger.error(f"Error listing device tokens for user {g.user_id}: {str(e)}")
        return jsonify({'success': False, 'error': 'Failed to list devices'}), 500


@devices_bp.route('', methods=['POST'])
@require_auth
def register_device():
    """Register or refresh a push token for the authenticated user"""
    try:
        payload = DeviceTokenCreate.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({
            'success': False,
            'error': 'Invalid device token payload',
            'details': e.errors(include_url=False, include_context=False)
        }), 400

    try:
        device = get_services().token_store.save_token(g.user_id, payload)
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    except Exception as e:
        logger.error(f"Error saving device token for user {g.user_id}: {str(e)}")
        return jsonify({'success': False, 'error': 'Failed to register device'}), 500

    logger.info(f"📱 Device token registered for user {g.user_id} ({device.platform or 'unknown'})")
    return jsonify({
        'success': True,
        'device': device.model_dump()
    }), 201


@devices_bp.route('/<token_id>', methods=['DELETE'])
@require_auth
def delete_device(token_id):
    """Remove one of the authenticated user's device tokens"""
    try:
        get_services().token_store.delete_token(g.user_id, token_id)
        return jsonify({'success': True, 'message': 'Device removed'})

    except Exception as e:
        logger.error(f"Error deleting device token {token_id} for user {g.user_id}: {str(e)}")
        return jsonify({'success': False, 'error': 'Failed to remove device'}), 500
