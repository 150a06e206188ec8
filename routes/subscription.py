# routes/subscription.py
"""
Subscription routes.
Plan catalog, plan change validation and plan change.
"""

from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from forms import PlanChangeForm
from feature_flags import get_org_features
from models import Plan
from services.security import (
    InvalidRequestError,
    PlanChangeError,
    change_plan,
    validate_plan_change,
)
from services.tenant_service import org_admin_required, invalid_request_response

subscription_bp = Blueprint('subscription', __name__, url_prefix='/subscription')


@subscription_bp.route('')
@login_required
def current_subscription():
    """Effective plan of the current organization."""
    return jsonify({'success': True, 'plan': get_org_features(current_user.organization_id).to_dict()})


@subscription_bp.route('/plans')
@login_required
def plans():
    catalog = Plan.query.filter_by(is_active=True).order_by(Plan.sort_order).all()
    return jsonify({'success': True, 'plans': [{
        'name': plan.name,
        'displayName': plan.display_name,
        'priceMonthly': plan.price_monthly,
        'limits': plan.limits.to_dict(),
        'features': sorted(plan.enabled_features),
    } for plan in catalog]})


@subscription_bp.route('/validate')
@login_required
@org_admin_required
def validate():
    """Preview a plan change: every limit violation at once."""
    try:
        validation = validate_plan_change(current_user.organization_id, request.args.get('plan', ''))
    except InvalidRequestError as e:
        return invalid_request_response(e)
    return jsonify({'success': True, 'validation': validation.to_dict()})


@subscription_bp.route('/change', methods=['POST'])
@login_required
@org_admin_required
def change():
    """Move the organization to another plan."""
    form = PlanChangeForm()
    if not form.validate_on_submit():
        return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400

    try:
        subscription = change_plan(current_user.organization_id, form.plan_name.data, actor_id=current_user.id)
    except InvalidRequestError as e:
        return invalid_request_response(e)
    except PlanChangeError as e:
        return jsonify({
            'success': False,
            'error': str(e),
            'reason': e.reason,
            'errors': e.errors,
            'currentUsage': e.current_usage.to_dict() if e.current_usage else None,
            'targetLimits': e.target_limits.to_dict() if e.target_limits else None,
            'isDowngrade': e.is_downgrade,
        }), 403

    return jsonify({
        'success': True,
        'planName': subscription.plan.name,
        'status': subscription.status,
        'plan': get_org_features(current_user.organization_id).to_dict(),
    })
