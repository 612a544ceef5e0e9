"""
Error taxonomy for sprint operations.

Every refused operation raises a SprintError subclass; routes never build error
payloads by hand. register_error_handlers() turns them into JSON responses.
"""
import logging

logger = logging.getLogger('bridgeit.errors')


class SprintError(Exception):
    """Base class — carries a kind, a machine code and an HTTP status."""
    kind = 'internal'
    status_code = 500
    default_code = 'internal_error'

    def __init__(self, message, code=None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_dict(self):
        return {'error': self.message, 'kind': self.kind, 'code': self.code}


class NotFoundError(SprintError):
    kind = 'not_found'
    status_code = 404
    default_code = 'not_found'


class ValidationError(SprintError):
    kind = 'validation'
    status_code = 400
    default_code = 'invalid_input'


class CapacityExceededError(SprintError):
    kind = 'capacity_exceeded'
    status_code = 409
    default_code = 'capacity_exceeded'


class ConflictingStateError(SprintError):
    kind = 'conflicting_state'
    status_code = 409
    default_code = 'conflicting_state'


class PreconditionFailedError(SprintError):
    kind = 'precondition_failed'
    status_code = 412
    default_code = 'precondition_failed'


class InternalError(SprintError):
    kind = 'internal'
    status_code = 500
    default_code = 'internal_error'


def register_error_handlers(app):
    """Render SprintError and unexpected exceptions as well-formed JSON."""
    from flask import jsonify
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(SprintError)
    def handle_sprint_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(err):
        return jsonify({'error': err.description, 'kind': 'http', 'code': err.name.lower().replace(' ', '_')}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        logger.error("Unhandled error: %s", err, exc_info=True)
        return jsonify(InternalError('Internal server error').to_dict()), 500
