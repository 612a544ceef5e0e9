"""
Structured logging configuration.

Called once from create_app(). LOG_FORMAT picks text or JSON output and
LOG_LEVEL the threshold. Inside a request every record carries the request id,
so a single join or award can be traced across services.
"""
import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone

REQUEST_ID_HEADER = 'X-Request-ID'

# Extra attributes copied into JSON output when a call site passes them
_CONTEXT_FIELDS = ('request_id', 'method', 'path', 'lead_id', 'user_id')

_NOISY_LOGGERS = [
    'urllib3',
    'botocore',
    'boto3',
    'sqlalchemy.engine',
    'werkzeug',
]


class RequestContextFilter(logging.Filter):
    """Stamp records with the current Flask request (or '-' outside one)."""

    def filter(self, record):
        from flask import g, has_request_context, request

        if has_request_context():
            record.request_id = getattr(g, 'request_id', '-')
            record.method = request.method
            record.path = request.path
        else:
            record.request_id = getattr(record, 'request_id', '-')
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, '-'):
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _resolve_level(name):
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _install_request_ids(app):
    access_logger = logging.getLogger('routes.access')

    @app.before_request
    def assign_request_id():
        from flask import g, request
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]

    @app.after_request
    def log_request(response):
        from flask import g, request
        response.headers[REQUEST_ID_HEADER] = getattr(g, 'request_id', '')
        access_logger.info("%s %s → %s", request.method, request.path, response.status_code)
        return response


def configure_logging(app=None):
    """
    Set up the root logger from LOG_LEVEL / LOG_FORMAT.

    With an app, also assigns each request an id (taken from X-Request-ID when
    the caller sends one) and echoes it on the response.
    """
    level = _resolve_level(os.getenv('LOG_LEVEL', 'INFO'))
    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s [%(request_id)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.handlers.clear()
        app.logger.propagate = True
        _install_request_ids(app)
