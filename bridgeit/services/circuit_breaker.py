"""
Circuit breakers for the outbound notification channels (nudge e-mail, Slack).

Each breaker keeps its whole state in one Redis hash, cb:<channel>:
  state      closed | open
  failures   consecutive failures since the last success
  opened_at  epoch seconds when the breaker tripped
  success / failure / last_error   running totals for /api/health

Half-open is derived, not stored: an open breaker whose reset_timeout has
elapsed lets the next send through as a probe. If Redis is unreachable every
breaker reads as closed, so notifications are attempted rather than dropped.
"""
import logging
import time

from redis.exceptions import RedisError

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """A send was skipped because its channel's breaker is open."""

    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        wait = f', retry in {int(retry_after)}s' if retry_after is not None else ''
        super().__init__(f"Channel '{name}' is unavailable{wait}")


class CircuitBreaker:

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.key = f'{self.PREFIX}:{name}'

    # ── State ─────────────────────────────────────────────────────────────

    def _snapshot(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except RedisError:
            logger.debug("Redis unavailable, treating '%s' as closed", self.name)
            return None

    def _elapsed_since_open(self, data):
        opened_at = float(data.get('opened_at') or 0)
        return time.time() - opened_at if opened_at else float('inf')

    def _state_of(self, data):
        if data is None or data.get('state') != OPEN:
            return CLOSED
        if self._elapsed_since_open(data) > self.reset_timeout:
            return HALF_OPEN
        return OPEN

    @property
    def state(self):
        return self._state_of(self._snapshot())

    @property
    def failure_count(self):
        data = self._snapshot() or {}
        return int(data.get('failures') or 0)

    def get_health(self):
        data = self._snapshot()
        if data is None:
            return {
                'name': self.name, 'state': 'unknown', 'failure_count': 0,
                'failure_threshold': self.failure_threshold, 'reset_timeout': self.reset_timeout,
                'total_success': 0, 'total_failure': 0, 'last_error': '',
            }
        return {
            'name': self.name,
            'state': self._state_of(data),
            'failure_count': int(data.get('failures') or 0),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('success') or 0),
            'total_failure': int(data.get('failure') or 0),
            'last_error': data.get('last_error', ''),
        }

    # ── Sends ─────────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Run one send; a short-circuited send raises CircuitOpenError."""
        data = self._snapshot()
        if self._state_of(data) == OPEN:
            remaining = self.reset_timeout - self._elapsed_since_open(data)
            raise CircuitOpenError(self.name, retry_after=max(0, remaining))

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def record_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self.key, 'state', CLOSED)
            pipe.hset(self.key, 'failures', 0)
            pipe.hincrby(self.key, 'success', 1)
            pipe.execute()
        except RedisError:
            logger.debug("Could not record success for '%s'", self.name)

    def record_failure(self, error):
        try:
            count = self.redis.hincrby(self.key, 'failures', 1)
            pipe = self.redis.pipeline()
            pipe.hincrby(self.key, 'failure', 1)
            pipe.hset(self.key, 'last_error', str(error)[:200])
            if count >= self.failure_threshold:
                # A failed half-open probe lands here too and restarts the timeout
                pipe.hset(self.key, 'state', OPEN)
                pipe.hset(self.key, 'opened_at', time.time())
            pipe.execute()
        except RedisError:
            logger.debug("Could not record failure for '%s'", self.name)
            return

        if count >= self.failure_threshold:
            logger.warning("Channel '%s' breaker OPEN after %d failures: %s", self.name, count, error)
        else:
            logger.info("Channel '%s' failure %d/%d: %s", self.name, count, self.failure_threshold, error)


# ── Registry ──────────────────────────────────────────────────────────────────

# Channel → (failure_threshold, reset_timeout seconds)
CHANNELS = {
    'email': (3, 300),
    'slack': (5, 120),
}

_registry = {}


def get_breaker(name, redis_client=None):
    """Breaker for a channel; unknown channels get default thresholds."""
    breaker = _registry.get(name)
    if breaker is None:
        if redis_client is None:
            from bridgeit.extensions import redis_client
        threshold, timeout = CHANNELS.get(name, (3, 300))
        breaker = _registry[name] = CircuitBreaker(name, redis_client, threshold, timeout)
    return breaker


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """(Re)build one breaker per notification channel on the given client."""
    for name, (threshold, timeout) in CHANNELS.items():
        _registry[name] = CircuitBreaker(name, redis_client, threshold, timeout)
    return get_all_breakers()
