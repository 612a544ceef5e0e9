"""
Voting routes — ballot state, open/close, and casting votes.
"""
import logging
from flask import Blueprint, jsonify, request

from bridgeit.services import voting
from bridgeit.services.notifications import notify_winner_awarded

logger = logging.getLogger('routes.voting')

bp = Blueprint('voting', __name__)


@bp.route('/api/voting/leads')
def open_ballots():
    return jsonify(voting.list_open_voting(voter_id=request.args.get('voter_id')))


@bp.route('/api/leads/<lead_id>/voting')
def voting_state(lead_id):
    return jsonify(voting.get_voting_state(lead_id, voter_id=request.args.get('voter_id')))


@bp.route('/api/leads/<lead_id>/open-voting', methods=['POST'])
def open_voting(lead_id):
    return jsonify(voting.open_voting(lead_id))


@bp.route('/api/leads/<lead_id>/close-voting', methods=['POST'])
def close_voting(lead_id):
    state = voting.close_voting(lead_id)
    notify_winner_awarded(state)
    return jsonify(state)


@bp.route('/api/builds/<build_id>/vote', methods=['POST'])
def vote(build_id):
    data = request.get_json(silent=True)
    data = data if isinstance(data, dict) else {}
    return jsonify(voting.cast_vote(build_id, data.get('voter_id'), data.get('score'))), 201
