"""
Health routes — liveness and outbound-service breaker status.
"""
from flask import Blueprint, jsonify

from bridgeit.services.circuit_breaker import get_all_breakers, OPEN
from bridgeit.services.leads import utcnow, to_iso

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    return jsonify({'status': 'healthy', 'timestamp': to_iso(utcnow())}), 200


@bp.route('/api/health')
def service_health():
    """Breaker state per notification channel; degraded while any is open."""
    services = {name: cb.get_health() for name, cb in sorted(get_all_breakers().items())}
    degraded = any(s['state'] == OPEN for s in services.values())
    return jsonify({
        'status': 'degraded' if degraded else 'healthy',
        'timestamp': to_iso(utcnow()),
        'services': services,
    }), 200
