"""
Centralized configuration — env vars, sprint policy constants, milestone map.
"""
import os


def _env_flag(name, default='false'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Cloudflare R2 (handoff brief archive) ─────────────────────────────────────
R2_ACCESS_KEY_ID = os.getenv('R2_ACCESS_KEY_ID')
R2_SECRET_ACCESS_KEY = os.getenv('R2_SECRET_ACCESS_KEY')
R2_BUCKET_NAME = os.getenv('R2_BUCKET_NAME')
R2_ENDPOINT_URL = os.getenv('R2_ENDPOINT_URL')
R2_PUBLIC_URL = os.getenv('R2_PUBLIC_URL')

# ── Notifications ─────────────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')
EMAIL_WEBHOOK_URL = os.getenv('EMAIL_WEBHOOK_URL')
EMAIL_FROM = os.getenv('EMAIL_FROM', 'sprints@bridge.it')
NOTIFY_TIMEOUT_SECONDS = int(os.getenv('NOTIFY_TIMEOUT_SECONDS', '10'))

# ── Checkpoint phase model ───────────────────────────────────────────────────
# When on, a submitted proof is approved immediately (direct-advance model).
AUTO_VERIFY_CHECKPOINTS = _env_flag('AUTO_VERIFY_CHECKPOINTS')

# ── Late finalists ───────────────────────────────────────────────────────────
#   exclude → builders completing after the 48h window are dropped from the finalist pool
#   include → they stay finalists and are penalised through the pace score only
LATE_FINALIST_POLICY = os.getenv('LATE_FINALIST_POLICY', 'exclude').lower()

# ── Milestones ───────────────────────────────────────────────────────────────
DEFAULT_MILESTONES = [
    {'id': 1, 'name': 'Architecture'},
    {'id': 2, 'name': 'Core Logic'},
    {'id': 3, 'name': 'API Integration'},
    {'id': 4, 'name': 'Demo Ready'},
]
TOTAL_MILESTONES = len(DEFAULT_MILESTONES)

# ── Sprint policy ─────────────────────────────────────────────────────────────
MIN_SLOTS, MAX_SLOTS = 1, 4
MIN_SPRINT_WEEKS, MAX_SPRINT_WEEKS = 2, 4
MAX_CONCURRENT_BUILDS = 3
SUBMISSION_WINDOW_HOURS = 48
STALL_THRESHOLD_HOURS = 72
NUDGE_COOLDOWN_HOURS = 72
FLAG_WARNING_HOURS = 5
MAX_EXTENSION_DAYS = 30
FULL_PROJECT = 'full_project'

# GitHub or Loom only
PROOF_LINK_PATTERN = r'^https?://(www\.)?(github\.com|loom\.com)(/|$)'

# ── Voting ────────────────────────────────────────────────────────────────────
MIN_VOTE_SCORE, MAX_VOTE_SCORE = 1, 5
MIN_VOTES_TO_CLOSE = 10
MIN_FINALISTS_FOR_VOTING = 2

# ── Lead views ────────────────────────────────────────────────────────────────
PRIORITY_HFI_THRESHOLD = 75

# ── Lead status values ────────────────────────────────────────────────────────
LEAD_STATUSES = [
    'qualified',
    'briefed',
    'matched',
    'awarded',
    'terminated',
]
