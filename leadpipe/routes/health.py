"""
Health routes: dependency connectivity check and task inspection.
"""
import logging
from flask import Blueprint, jsonify

from leadpipe.database import check_database
from leadpipe.services import db, object_store

bp = Blueprint('health', __name__)

logger = logging.getLogger('routes.health')


def _check(name, fn):
    try:
        fn()
        return 'ok'
    except Exception as e:
        logger.warning("Health check %s failed: %s", name, e)
        return f'error: {e}'


def _ping_redis():
    from leadpipe.extensions import redis_client
    redis_client.ping()


@bp.route('/health')
def health_check():
    """200 when the database, Redis and the object store all answer, else 503."""
    checks = {
        'database': _check('database', check_database),
        'redis': _check('redis', _ping_redis),
        'object_store': _check('object_store', object_store.check_object_store),
    }
    healthy = all(v == 'ok' for v in checks.values())
    body = {'status': 'healthy' if healthy else 'unhealthy', 'checks': checks}
    return jsonify(body), 200 if healthy else 503


@bp.route('/api/tasks/<task_id>')
def get_task(task_id):
    task = db.get_task(task_id)
    if task is None:
        return jsonify({'error': 'Task not found'}), 404
    return jsonify(task), 200
