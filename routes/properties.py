from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from forms import PropertyForm
from models import db, Property, Unit
from services.security import Action, ObjectType, LimitExceededError, assert_can_add
from services.security.usage_guard import RESOURCE_LOTS
from services.tenant_service import access_required, org_query, limit_exceeded_response

properties_bp = Blueprint('properties', __name__, url_prefix='/properties')


@properties_bp.route('')
@login_required
@access_required(ObjectType.PROPERTY, Action.READ)
def list_properties():
    properties = org_query(Property).order_by(Property.name).all()
    return jsonify({'success': True, 'properties': [p.to_dict() for p in properties]})


@properties_bp.route('', methods=['POST'])
@login_required
@access_required(ObjectType.PROPERTY, Action.CREATE)
def create_property():
    form = PropertyForm()
    if not form.validate_on_submit():
        return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400

    prop = Property(
        organization_id=current_user.organization_id,
        name=form.name.data.strip(),
        address=form.address.data,
        created_by_id=current_user.id,
    )
    db.session.add(prop)
    db.session.commit()
    return jsonify({'success': True, 'property': prop.to_dict()}), 201


@properties_bp.route('/<int:property_id>')
@login_required
@access_required(ObjectType.PROPERTY, Action.READ, id_arg='property_id')
def get_property(property_id):
    prop = db.session.get(Property, property_id)
    data = prop.to_dict()
    data['units'] = [{'id': unit.id, 'name': unit.name} for unit in prop.units]
    return jsonify({'success': True, 'property': data})


@properties_bp.route('/<int:property_id>', methods=['DELETE'])
@login_required
@access_required(ObjectType.PROPERTY, Action.DELETE, id_arg='property_id')
def delete_property(property_id):
    prop = db.session.get(Property, property_id)
    db.session.delete(prop)
    db.session.commit()
    return jsonify({'success': True})


@properties_bp.route('/<int:property_id>/units', methods=['POST'])
@login_required
@access_required(ObjectType.PROPERTY, Action.EDIT, id_arg='property_id')
@access_required(ObjectType.UNIT, Action.CREATE)
def add_unit(property_id):
    """Add a lot to a property. Each unit counts against the plan's lot limit."""
    form = PropertyForm()
    if not form.validate_on_submit():
        return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400

    try:
        assert_can_add(current_user.organization_id, RESOURCE_LOTS)
    except LimitExceededError as e:
        return limit_exceeded_response(e)

    unit = Unit(property_id=property_id, name=form.name.data.strip())
    db.session.add(unit)
    db.session.commit()
    return jsonify({'success': True, 'unit': {'id': unit.id, 'name': unit.name, 'propertyId': property_id}}), 201
