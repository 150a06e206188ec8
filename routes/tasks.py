from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from sqlalchemy import or_

from forms import TaskForm
from models import db, Task, User
from services.security import Action, ObjectType, can
from services.tenant_service import access_required, org_query

tasks_bp = Blueprint('tasks', __name__, url_prefix='/tasks')

TASK_STATUSES = ('pending', 'in_progress', 'completed')


@tasks_bp.route('')
@login_required
@access_required(ObjectType.TASK, Action.READ)
def list_tasks():
    view = request.args.get('view', 'my')
    status_filter = request.args.get('status', 'all')

    query = org_query(Task)

    # Users without viewAll only ever see their own tasks
    show_all = view == 'all' and can(current_user, ObjectType.TASK, Action.VIEW_ALL)
    if not show_all:
        query = query.filter(or_(
            Task.created_by_id == current_user.id,
            Task.assigned_to_id == current_user.id
        ))

    if status_filter != 'all':
        query = query.filter_by(status=status_filter)

    tasks = query.order_by(Task.due_date.asc(), Task.id.asc()).all()
    return jsonify({'success': True, 'showAll': show_all, 'tasks': [t.to_dict() for t in tasks]})


@tasks_bp.route('', methods=['POST'])
@login_required
@access_required(ObjectType.TASK, Action.CREATE)
def create_task():
    form = TaskForm()
    if not form.validate_on_submit():
        return jsonify({'success': False, 'error': 'Invalid form data.', 'errors': form.errors}), 400

    assigned_to_id = form.assigned_to_id.data or current_user.id
    if not org_query(User).filter_by(id=assigned_to_id).first():
        return jsonify({'success': False, 'error': 'Assignee is not a member of this organization.'}), 400

    task = Task(
        organization_id=current_user.organization_id,
        title=form.title.data.strip(),
        description=form.description.data,
        created_by_id=current_user.id,
        assigned_to_id=assigned_to_id,
    )
    db.session.add(task)
    db.session.commit()
    return jsonify({'success': True, 'task': task.to_dict()}), 201


@tasks_bp.route('/<int:task_id>')
@login_required
@access_required(ObjectType.TASK, Action.READ, id_arg='task_id')
def get_task(task_id):
    return jsonify({'success': True, 'task': db.session.get(Task, task_id).to_dict()})


@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@login_required
@access_required(ObjectType.TASK, Action.EDIT, id_arg='task_id')
def update_task(task_id):
    task = db.session.get(Task, task_id)
    data = request.get_json(silent=True) or {}

    if 'status' in data:
        if data['status'] not in TASK_STATUSES:
            return jsonify({'success': False, 'error': f"Invalid status: {data['status']}"}), 400
        task.status = data['status']
    if data.get('title'):
        task.title = data['title'].strip()
    if 'description' in data:
        task.description = data['description']

    db.session.commit()
    return jsonify({'success': True, 'task': task.to_dict()})


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@login_required
@access_required(ObjectType.TASK, Action.DELETE, id_arg='task_id')
def delete_task(task_id):
    task = db.session.get(Task, task_id)
    db.session.delete(task)
    db.session.commit()
    return jsonify({'success': True})
