"""
Handoff routes — Markdown brief generation and download.
"""
import logging
from flask import Blueprint, Response, jsonify, request

from bridgeit.errors import ValidationError
from bridgeit.services.handoff import generate_handoff, render_markdown_brief, brief_filename
from bridgeit.services.leads import get_lead

logger = logging.getLogger('routes.handoff')

bp = Blueprint('handoff', __name__)


@bp.route('/generate-handoff', methods=['POST'])
def create_handoff():
    data = request.get_json(silent=True) or {}
    lead_id = data.get('leadId') if isinstance(data, dict) else None
    if not lead_id:
        raise ValidationError('Lead ID is required', code='missing_field')
    return jsonify(generate_handoff(get_lead(lead_id)))


@bp.route('/generate-handoff/<lead_id>/markdown')
def download_markdown(lead_id):
    lead = get_lead(lead_id)
    filename = f"{brief_filename(lead)}.md"
    return Response(
        render_markdown_brief(lead),
        mimetype='text/markdown',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )
