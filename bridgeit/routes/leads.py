"""
Lead routes — dashboard listing, single lead, import, promote, proof queue.
"""
import logging
from flask import Blueprint, jsonify, request

from bridgeit.errors import ValidationError
from bridgeit.services.leads import (
    list_leads, get_lead, put_lead, promote_lead, list_pending_proofs, recent_submissions,
)

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


@bp.route('/api/leads')
def leads_index():
    """Main view (high HFI or promoted) or ?view=all for the full library."""
    view = request.args.get('view', 'main')
    return jsonify(list_leads(view=view))


@bp.route('/api/leads', methods=['POST'])
def import_lead():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object', code='invalid_body')
    return jsonify(put_lead(data)), 201


@bp.route('/api/leads/<lead_id>')
def lead_detail(lead_id):
    return jsonify(get_lead(lead_id))


@bp.route('/api/leads/<lead_id>/promote', methods=['PATCH'])
def promote(lead_id):
    return jsonify(promote_lead(lead_id))


@bp.route('/api/proofs/pending')
def pending_proofs():
    """Scout verify queue."""
    proofs = list_pending_proofs()
    return jsonify({'proofs': proofs, 'count': len(proofs)})


@bp.route('/api/recent-submissions')
def recent():
    limit = request.args.get('limit', 10, type=int)
    return jsonify({'submissions': recent_submissions(limit=limit)})
