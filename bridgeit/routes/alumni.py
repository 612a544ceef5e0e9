"""
Alumni routes — directory, profile, leaderboard.
"""
from flask import Blueprint, jsonify, request

from bridgeit.errors import ValidationError
from bridgeit.services.alumni import list_alumni, get_alumni, leaderboard, put_alumni

bp = Blueprint('alumni', __name__)


def _flag_arg(name):
    raw = request.args.get(name)
    if raw is None:
        return None
    if raw.lower() in ('true', '1', 'yes'):
        return True
    if raw.lower() in ('false', '0', 'no'):
        return False
    raise ValidationError(f'{name} must be true or false', code='invalid_field')


@bp.route('/api/alumni')
def directory():
    rows = list_alumni(specialty=request.args.get('specialty'), available=_flag_arg('available'))
    return jsonify({'alumni': rows, 'count': len(rows)})


@bp.route('/api/alumni', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object', code='invalid_body')
    return jsonify(put_alumni(data)), 201


@bp.route('/api/alumni/leaderboard')
def winners_circle():
    limit = request.args.get('limit', 10, type=int)
    return jsonify({'leaderboard': leaderboard(limit=limit)})


@bp.route('/api/alumni/<user_id>')
def profile(user_id):
    return jsonify(get_alumni(user_id))
