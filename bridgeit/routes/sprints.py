"""
Sprint routes — lifecycle, checkpoints, review, winner and scout interventions.

Request bodies use the dashboard's camelCase keys. Service errors propagate to
the handlers in bridgeit.errors.
"""
import logging
from flask import Blueprint, jsonify, request

from bridgeit.services import sprints
from bridgeit.services.notifications import notify_winner_awarded
from bridgeit.services.nudges import sweep_stalled

logger = logging.getLogger('routes.sprints')

bp = Blueprint('sprints', __name__)


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _actor(data):
    return data.get('scoutName') or sprints.DEFAULT_ACTOR


def _with_award_notice(lead):
    if 'scoreBreakdown' in lead:
        notify_winner_awarded(lead)
    return jsonify(lead)


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@bp.route('/api/leads/<lead_id>/launch-sprint', methods=['POST'])
def launch(lead_id):
    data = _body()
    return jsonify(sprints.launch_sprint(lead_id, data.get('maxSlots'), data.get('sprintDuration')))


@bp.route('/api/leads/<lead_id>/join-sprint', methods=['POST'])
def join(lead_id):
    data = _body()
    lead = sprints.join_sprint(
        lead_id,
        data.get('userId'),
        selected_deliverables=data.get('selectedDeliverables'),
        user_name=data.get('userName'),
    )
    return jsonify(lead)


@bp.route('/api/leads/<lead_id>/submit-checkpoint', methods=['POST'])
def submit_checkpoint(lead_id):
    data = _body()
    return jsonify(sprints.submit_checkpoint(
        lead_id, data.get('userId'), data.get('milestoneId'), data.get('proofLink'),
    ))


@bp.route('/api/leads/<lead_id>/verify-checkpoint', methods=['POST'])
def verify_checkpoint(lead_id):
    data = _body()
    return jsonify(sprints.verify_checkpoint(
        lead_id, data.get('userId'), data.get('milestoneId'), data.get('approved'),
        notes=data.get('notes'), actor=_actor(data),
    ))


@bp.route('/api/leads/<lead_id>/scout-review', methods=['POST'])
def scout_review(lead_id):
    data = _body()
    lead = sprints.submit_scout_review(
        lead_id, data.get('userId'), data.get('qualityScore'),
        scout_review_score=data.get('scoutReviewScore'),
        review_notes=data.get('reviewNotes'),
    )
    return _with_award_notice(lead)


@bp.route('/api/leads/<lead_id>/calculate-winner', methods=['POST'])
def calculate_winner(lead_id):
    return _with_award_notice(sprints.calculate_winner(lead_id))


# ── Scout interventions ───────────────────────────────────────────────────────

@bp.route('/api/leads/<lead_id>/pause-sprint', methods=['PATCH'])
def pause(lead_id):
    data = _body()
    return jsonify(sprints.set_paused(lead_id, data.get('isPaused'), actor=_actor(data)))


@bp.route('/api/leads/<lead_id>/extend-deadline', methods=['PATCH'])
def extend(lead_id):
    data = _body()
    return jsonify(sprints.extend_deadline(lead_id, data.get('days'), actor=_actor(data)))


@bp.route('/api/leads/<lead_id>/evict-builder/<builder_id>', methods=['DELETE'])
def evict(lead_id, builder_id):
    data = _body()
    return jsonify(sprints.evict_builder(lead_id, builder_id, actor=_actor(data), reason=data.get('reason')))


@bp.route('/api/leads/<lead_id>/terminate-sprint', methods=['POST'])
def terminate(lead_id):
    data = _body()
    return jsonify(sprints.terminate_sprint(lead_id, actor=_actor(data), reason=data.get('reason')))


@bp.route('/api/leads/<lead_id>/nudge-builder/<builder_id>', methods=['POST'])
def nudge(lead_id, builder_id):
    data = _body()
    return jsonify(sprints.nudge_builder(lead_id, builder_id, actor=_actor(data)))


@bp.route('/api/leads/<lead_id>/flag-builder/<builder_id>', methods=['POST'])
def flag(lead_id, builder_id):
    data = _body()
    return jsonify(sprints.flag_builder(lead_id, builder_id, actor=_actor(data)))


# ── Stall detection ───────────────────────────────────────────────────────────

@bp.route('/api/sprints/stalled')
def stalled():
    builders = sprints.detect_stalled()
    return jsonify({'stalled': builders, 'count': len(builders)})


@bp.route('/api/sprints/stalled/nudge', methods=['POST'])
def nudge_stalled():
    data = _body()
    return jsonify(sweep_stalled(actor=data.get('scoutName') or 'System'))
