# routes/access.py
"""
Access API for UI consumers.
Access snapshot, ad-hoc security checks and the visible navigation.
"""

from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from forms import SecurityCheckForm
from services.security import (
    InvalidRequestError,
    check_access,
    check_navigation_item,
    get_access_snapshot,
    NAVIGATION_ITEMS,
)
from services.tenant_service import invalid_request_response

access_bp = Blueprint('access', __name__, url_prefix='/api')


@access_bp.route('/access')
@login_required
def access_snapshot():
    """Fully defaulted access payload for the current user."""
    return jsonify({'success': True, 'access': get_access_snapshot(current_user)})


@access_bp.route('/security/check', methods=['POST'])
@login_required
def security_check():
    """
    Ask the engine about one action.

    Body: {"object_type": "Task", "action": "edit", "object_id": 12}
    object_id is optional; when present the record relation checks apply.
    """
    form = SecurityCheckForm()
    if not form.validate_on_submit():
        return jsonify({
            'success': False,
            'error': 'Invalid security check request.',
            'reason': 'invalid_request',
            'errors': form.errors,
        }), 400

    try:
        decision = check_access(current_user, form.object_type.data, form.action.data, form.object_id.data)
    except InvalidRequestError as e:
        return invalid_request_response(e)

    return jsonify({'success': True, **decision.to_dict()})


@access_bp.route('/navigation')
@login_required
def navigation():
    """Navigation entries with their visibility verdicts."""
    items = []
    for item in NAVIGATION_ITEMS:
        decision = check_navigation_item(current_user, item)
        items.append({**item.to_dict(), 'visible': decision.allowed, 'reason': decision.reason.value})
    return jsonify({'success': True, 'items': items})
