from flask import Blueprint, jsonify, request
from flask_login import login_required
from charades import db
from charades.models import CharadesTask

tasks = Blueprint('tasks', __name__)


@tasks.route('', methods=['GET'])
def list_tasks():
    query = CharadesTask.query
    category = request.args.get('category')
    if category:
        query = query.filter_by(category=category)
    return jsonify([t.to_dict() for t in query.order_by(CharadesTask.id).all()])


@tasks.route('/categories', methods=['GET'])
def list_categories():
    rows = db.session.query(CharadesTask.category).filter(CharadesTask.category.isnot(None)).distinct().all()
    return jsonify(sorted(r[0] for r in rows))


@tasks.route('', methods=['POST'])
@login_required
def add_tasks():
    """Add one prompt, or a batch under ``tasks``."""
    data = request.get_json(silent=True) or {}
    items = data.get('tasks') if isinstance(data.get('tasks'), list) else [data]
    created = []
    for item in items:
        content = (item.get('content') or '').strip() if isinstance(item, dict) else ''
        if not content:
            return jsonify({'error': 'Task content is required'}), 400
        task = CharadesTask(content=content, category=(item.get('category') or None))
        db.session.add(task)
        created.append(task)
    db.session.commit()
    return jsonify([t.to_dict() for t in created]), 201
