"""
Sprint lifecycle engine — launch, join, checkpoints, reviews, interventions, winner.

State per lead:
  not_launched → active (open slots) → active (full, window open)
  → active (window closed, evaluating) → awarded | terminated

Every operation runs in one session_scope() transaction and locks the lead row
first. Input is validated before anything is written, so a refused operation
never leaves partial state behind. Callers get the serialized lead back.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Iterable

from sqlalchemy.exc import IntegrityError

from bridgeit.config import (
    MIN_SLOTS, MAX_SLOTS, MIN_SPRINT_WEEKS, MAX_SPRINT_WEEKS,
    MAX_CONCURRENT_BUILDS, FLAG_WARNING_HOURS, MAX_EXTENSION_DAYS,
    STALL_THRESHOLD_HOURS, NUDGE_COOLDOWN_HOURS, SUBMISSION_WINDOW_HOURS,
    PROOF_LINK_PATTERN, FULL_PROJECT, AUTO_VERIFY_CHECKPOINTS, LATE_FINALIST_POLICY,
)
from bridgeit.database import session_scope
from bridgeit.errors import (
    NotFoundError, ValidationError, CapacityExceededError,
    ConflictingStateError, PreconditionFailedError,
)
from bridgeit.models.active_builder import ActiveBuilder
from bridgeit.models.alumni import AlumniProfile
from bridgeit.models.audit_entry import AuditEntry
from bridgeit.models.build import Build
from bridgeit.models.builder_assignment import BuilderAssignment
from bridgeit.models.lead import Lead
from bridgeit.services.leads import (
    utcnow, to_iso, parse_timestamp, milestones_for, serialize_lead, load_profiles,
    submission_window_closed,
)
from bridgeit.services.scoring import score_finalist, pick_highest

logger = logging.getLogger('services.sprints')

_PROOF_LINK_RE = re.compile(PROOF_LINK_PATTERN, re.IGNORECASE)

DEFAULT_ACTOR = 'Scout'


# ── Validation helpers ────────────────────────────────────────────────────────

def require_int(value, field: str, low: int = None, high: int = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be an integer', code='invalid_field')
    if (low is not None and value < low) or (high is not None and value > high):
        raise ValidationError(f'{field} must be between {low} and {high}', code='out_of_range')
    return value


def _require_score(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f'{field} must be a number', code='invalid_field')
    if not 0 <= value <= 100:
        raise ValidationError(f'{field} must be between 0 and 100', code='out_of_range')
    return float(value)


def require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} is required', code='missing_field')
    return value.strip()


def validate_proof_link(proof_link) -> str:
    """Only GitHub and Loom links count as checkpoint evidence."""
    link = require_text(proof_link, 'proofLink')
    if not _PROOF_LINK_RE.match(link):
        raise ValidationError('Proof link must be a GitHub or Loom URL', code='invalid_proof_link')
    return link


# ── Lead / builder access ─────────────────────────────────────────────────────

def lock_lead(session, lead_id: str) -> Lead:
    """Fetch the lead with a row lock (FOR UPDATE on Postgres)."""
    lead = (
        session.query(Lead)
        .filter(Lead.id == lead_id)
        .with_for_update()
        .one_or_none()
    )
    if lead is None:
        raise NotFoundError(f'Lead {lead_id} not found', code='lead_not_found')
    return lead


def _find_builder(lead: Lead, user_id: str) -> ActiveBuilder:
    for builder in lead.builders:
        if builder.user_id == user_id:
            return builder
    raise NotFoundError(
        f'Builder {user_id} is not part of the sprint for {lead.business_name}',
        code='builder_not_found',
    )


def _require_active(lead: Lead):
    if not lead.sprint_active:
        raise ConflictingStateError(
            f'No active sprint on {lead.business_name}', code='sprint_not_active',
        )


def _total_milestones(lead: Lead) -> int:
    return len(milestones_for(lead))


def _assignment_for(session, user_id: str) -> Optional[BuilderAssignment]:
    return session.get(BuilderAssignment, user_id)


def _audit(lead: Lead, actor: str, action: str, detail: str, reason: str = None, now: datetime = None):
    lead.audit_log.append(AuditEntry(
        actor=actor or DEFAULT_ACTOR,
        action=action,
        detail=detail,
        reason=reason or None,
        created_at=now or utcnow(),
    ))


def _builder_label(session, builder: ActiveBuilder) -> str:
    profile = session.get(AlumniProfile, builder.user_id)
    return (profile.name if profile else None) or builder.user_name or builder.user_id


def _release_builders(session, lead: Lead, user_ids: Iterable[str]):
    """Drop builder → lead assignments and hand back registry capacity."""
    for user_id in user_ids:
        assignment = _assignment_for(session, user_id)
        if assignment is not None and assignment.lead_id == lead.id:
            session.delete(assignment)
        profile = session.get(AlumniProfile, user_id)
        if profile is not None and (profile.current_build_count or 0) > 0:
            profile.current_build_count -= 1


def _result(session, lead: Lead, now: datetime) -> Dict:
    lead.updated_at = now
    session.flush()
    return serialize_lead(lead, session, now)


# ── Launch / join ─────────────────────────────────────────────────────────────

def launch_sprint(lead_id: str, max_slots, duration_weeks, now: datetime = None) -> Dict:
    """Open a competitive sprint on a lead."""
    max_slots = require_int(max_slots, 'maxSlots', MIN_SLOTS, MAX_SLOTS)
    duration_weeks = require_int(duration_weeks, 'sprintDuration', MIN_SPRINT_WEEKS, MAX_SPRINT_WEEKS)
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        if lead.sprint_active:
            raise ConflictingStateError('Sprint is already active on this lead', code='sprint_already_active')
        if lead.winner_user_id:
            raise ConflictingStateError('A winner has already been decided for this lead', code='winner_decided')

        # Relaunch after termination starts from a clean slate
        for build in session.query(Build).filter(Build.lead_id == lead.id).all():
            session.delete(build)
        lead.builders.clear()

        lead.sprint_active = True
        lead.max_slots = max_slots
        lead.sprint_duration = duration_weeks
        lead.sprint_started_at = now
        lead.sprint_deadline = now + timedelta(weeks=duration_weeks)
        lead.is_paused = False
        lead.first_completion_at = None
        lead.voting_open = False
        lead.winner_average_score = None
        lead.status = 'matched'

        logger.info("Sprint launched on %s (slots=%d, weeks=%d)", lead_id, max_slots, duration_weeks)
        return _result(session, lead, now)


def join_sprint(lead_id: str, user_id: str, selected_deliverables: List[str] = None,
                user_name: str = None, now: datetime = None) -> Dict:
    """
    Add a builder to a lead's sprint.

    Refusals, in order: unknown builder, builder at max concurrent builds,
    builder active on another lead, no open slot, already joined here.
    """
    user_id = require_text(user_id, 'userId')
    if selected_deliverables is not None and (
        not isinstance(selected_deliverables, list)
        or not all(isinstance(d, str) and d for d in selected_deliverables)
    ):
        raise ValidationError('selectedDeliverables must be a list of ids', code='invalid_field')
    deliverables = list(dict.fromkeys(selected_deliverables or [])) or [FULL_PROJECT]
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)

        profile = (
            session.query(AlumniProfile)
            .filter(AlumniProfile.id == user_id)
            .with_for_update()
            .one_or_none()
        )
        if profile is None:
            raise NotFoundError(f'Builder {user_id} not found in alumni registry', code='builder_not_found')
        if (profile.current_build_count or 0) >= MAX_CONCURRENT_BUILDS:
            raise CapacityExceededError(
                f'{profile.name} is already at {MAX_CONCURRENT_BUILDS} concurrent builds',
                code='max_concurrent_builds',
            )

        assignment = _assignment_for(session, user_id)
        if assignment is not None and assignment.lead_id != lead.id:
            raise ConflictingStateError(
                f'{profile.name} is already building another project', code='already_elsewhere',
            )
        if len(lead.builders) >= (lead.max_slots or 0):
            raise CapacityExceededError('All sprint slots are taken', code='slots_full')
        if any(b.user_id == user_id for b in lead.builders):
            raise ConflictingStateError(f'{profile.name} already joined this sprint', code='duplicate_join')

        lead.builders.append(ActiveBuilder(
            user_id=user_id,
            user_name=user_name or profile.name,
            joined_at=now,
            checkpoints_completed=0,
            selected_deliverables=deliverables,
            proof_links=[],
            checkpoint_statuses={},
            last_checkpoint_update=now,
        ))
        if assignment is None:
            session.add(BuilderAssignment(builder_id=user_id, lead_id=lead.id, assigned_at=now))
        profile.current_build_count = (profile.current_build_count or 0) + 1

        try:
            session.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent join for the same builder
            raise ConflictingStateError(
                f'{profile.name} is already building another project', code='already_elsewhere',
            ) from e

        logger.info("Builder %s joined sprint %s (%d/%d slots)",
                    user_id, lead_id, len(lead.builders), lead.max_slots)
        return _result(session, lead, now)


# ── Checkpoints ───────────────────────────────────────────────────────────────

def _milestone_key(lead: Lead, milestone_id) -> str:
    milestone_id = require_int(milestone_id, 'milestoneId', 1, _total_milestones(lead))
    return str(milestone_id)


def _apply_verification(lead: Lead, builder: ActiveBuilder, milestone_id: int, approved: bool,
                        now: datetime, notes: str = None, actor: str = None):
    key = str(milestone_id)
    statuses = dict(builder.checkpoint_statuses or {})
    statuses[key] = {
        **statuses.get(key, {}),
        'status': 'verified' if approved else 'rejected',
        'reviewedAt': to_iso(now),
        'reviewNotes': notes or '',
        'reviewedBy': actor or DEFAULT_ACTOR,
    }
    builder.checkpoint_statuses = statuses

    if not approved:
        logger.info("Checkpoint %s rejected for %s on %s", key, builder.user_id, lead.id)
        return

    if builder.checkpoints_completed < milestone_id:
        builder.checkpoints_completed = milestone_id
    builder.last_checkpoint_update = now

    if builder.checkpoints_completed >= _total_milestones(lead) and builder.completed_at is None:
        # Completion dates from the proof submission, not from the scout's review
        builder.completed_at = parse_timestamp(statuses[key].get('submittedAt')) or now
        if lead.first_completion_at is None:
            lead.first_completion_at = now
            logger.info("First completion on %s by %s — %dh submission window opens",
                        lead.id, builder.user_id, SUBMISSION_WINDOW_HOURS)


def submit_checkpoint(lead_id: str, user_id: str, milestone_id, proof_link, now: datetime = None) -> Dict:
    """Record proof for a milestone; it counts once a scout verifies it."""
    user_id = require_text(user_id, 'userId')
    link = validate_proof_link(proof_link)
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        builder = _find_builder(lead, user_id)
        key = _milestone_key(lead, milestone_id)

        statuses = dict(builder.checkpoint_statuses or {})
        current = statuses.get(key, {})
        if current.get('status') != 'verified':
            statuses[key] = {'status': 'submitted', 'proofLink': link, 'submittedAt': to_iso(now)}
            builder.checkpoint_statuses = statuses

        links = list(builder.proof_links or [])
        if link not in links:
            builder.proof_links = links + [link]
        builder.last_checkpoint_update = now

        if submission_window_closed(lead.first_completion_at, now):
            logger.info("Late checkpoint %s from %s on %s (window closed)", key, user_id, lead_id)

        if AUTO_VERIFY_CHECKPOINTS and current.get('status') != 'verified':
            _apply_verification(lead, builder, int(key), True, now, actor='auto')

        logger.info("Checkpoint %s submitted by %s on %s", key, user_id, lead_id)
        return _result(session, lead, now)


def verify_checkpoint(lead_id: str, user_id: str, milestone_id, approved, notes: str = None,
                      actor: str = None, now: datetime = None) -> Dict:
    """Scout decision on a submitted checkpoint."""
    user_id = require_text(user_id, 'userId')
    if not isinstance(approved, bool):
        raise ValidationError('approved must be true or false', code='invalid_field')
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        builder = _find_builder(lead, user_id)
        key = _milestone_key(lead, milestone_id)

        current = (builder.checkpoint_statuses or {}).get(key, {})
        if current.get('status') != 'submitted':
            raise ConflictingStateError(
                f'Milestone {key} has no submission awaiting verification', code='no_pending_submission',
            )

        _apply_verification(lead, builder, int(key), approved, now, notes=notes, actor=actor)
        return _result(session, lead, now)


# ── Review & winner ───────────────────────────────────────────────────────────

def finalists_for(lead: Lead) -> List[ActiveBuilder]:
    """Builders who completed every milestone, in join order.

    Under the exclude policy a builder whose final proof was submitted after the
    window closed drops out; late verification by the scout does not count against them.
    """
    total = _total_milestones(lead)
    finalists = [b for b in lead.builders if b.checkpoints_completed >= total]
    if LATE_FINALIST_POLICY == 'exclude' and lead.first_completion_at is not None:
        cutoff = lead.first_completion_at + timedelta(hours=SUBMISSION_WINDOW_HOURS)
        finalists = [b for b in finalists if b.completed_at is None or b.completed_at <= cutoff]
    return finalists


def evaluate_winner(lead: Lead, now: datetime):
    """
    Score every finalist and pick the winner.

    Returns (winning builder, [FinalistScore]) or raises when the lead is not
    ready to be decided.
    """
    if lead.winner_user_id:
        raise ConflictingStateError('A winner has already been decided', code='winner_decided')
    if lead.first_completion_at is None:
        raise PreconditionFailedError('No builder has completed all milestones yet', code='no_finalists')
    if not submission_window_closed(lead.first_completion_at, now):
        raise PreconditionFailedError('Submission window is still open', code='window_open')

    finalists = finalists_for(lead)
    if not finalists:
        raise PreconditionFailedError('No finalists to score', code='no_finalists')
    pending = [b.user_id for b in finalists if not b.has_review]
    if pending:
        raise PreconditionFailedError(
            f'Scout review missing for: {", ".join(pending)}', code='reviews_pending',
        )

    scored = [
        (b, score_finalist(
            user_id=b.user_id,
            joined_at=b.joined_at,
            checkpoints_completed=b.checkpoints_completed,
            first_completion_at=lead.first_completion_at,
            quality_score=b.quality_score,
            scout_review_score=b.scout_review_score,
        ))
        for b in finalists
    ]
    winner, _ = pick_highest(scored, key=lambda pair: pair[1].total_score)
    return winner, [score for _, score in scored]


def award_winner(session, lead: Lead, winner_user_id: str, now: datetime, average_score: float = None):
    """Terminal transition shared by the scout-review and voting paths."""
    lead.winner_user_id = winner_user_id
    lead.status = 'awarded'
    lead.sprint_active = False
    lead.voting_open = False
    if average_score is not None:
        lead.winner_average_score = average_score

    _release_builders(session, lead, [b.user_id for b in lead.builders])

    profile = session.get(AlumniProfile, winner_user_id)
    if profile is not None:
        profile.completed_builds = list(profile.completed_builds or []) + [{
            'leadId': lead.id,
            'businessName': lead.business_name,
            'awardedAt': to_iso(now),
        }]

    logger.info("Lead %s awarded to %s", lead.id, winner_user_id)


def _decide(session, lead: Lead, now: datetime) -> List[Dict]:
    winner, scores = evaluate_winner(lead, now)
    award_winner(session, lead, winner.user_id, now)
    return [s.to_dict() for s in scores]


def submit_scout_review(lead_id: str, user_id: str, quality_score, scout_review_score=None,
                        review_notes: str = None, now: datetime = None) -> Dict:
    """
    Store a scout's review of one builder.

    Afterwards the lead is checked for a decidable winner; if every finalist is
    reviewed and the window has closed, the award happens in the same
    transaction and the score breakdown is attached to the result.
    """
    user_id = require_text(user_id, 'userId')
    quality = _require_score(quality_score, 'qualityScore')
    review = quality if scout_review_score is None else _require_score(scout_review_score, 'scoutReviewScore')
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        if lead.winner_user_id:
            raise ConflictingStateError('A winner has already been decided', code='winner_decided')
        builder = _find_builder(lead, user_id)

        builder.quality_score = quality
        builder.scout_review_score = review
        builder.review_notes = review_notes or ''
        builder.reviewed_at = now
        logger.info("Scout review stored for %s on %s (quality=%.0f)", user_id, lead_id, quality)

        breakdown = None
        try:
            breakdown = _decide(session, lead, now)
        except PreconditionFailedError as e:
            logger.debug("Auto-award not ready for %s: %s", lead_id, e.message)

        result = _result(session, lead, now)
        if breakdown is not None:
            result['scoreBreakdown'] = breakdown
        return result


def calculate_winner(lead_id: str, now: datetime = None) -> Dict:
    """Explicit winner calculation (scout-review path)."""
    now = now or utcnow()
    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        breakdown = _decide(session, lead, now)
        result = _result(session, lead, now)
        result['scoreBreakdown'] = breakdown
        return result


# ── Administrative interventions ──────────────────────────────────────────────

def set_paused(lead_id: str, is_paused: bool, actor: str = None, now: datetime = None) -> Dict:
    """Pause or resume. Timers keep running either way."""
    if not isinstance(is_paused, bool):
        raise ValidationError('isPaused must be true or false', code='invalid_field')
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        lead.is_paused = is_paused
        action = 'pause' if is_paused else 'resume'
        _audit(lead, actor, action,
               f'Sprint {"paused" if is_paused else "resumed"} by {actor or DEFAULT_ACTOR}', now=now)
        logger.info("Sprint %s %sd by %s", lead_id, action, actor or DEFAULT_ACTOR)
        return _result(session, lead, now)


def pause_sprint(lead_id: str, actor: str = None, now: datetime = None) -> Dict:
    return set_paused(lead_id, True, actor, now)


def resume_sprint(lead_id: str, actor: str = None, now: datetime = None) -> Dict:
    return set_paused(lead_id, False, actor, now)


def extend_deadline(lead_id: str, days, actor: str = None, now: datetime = None) -> Dict:
    days = require_int(days, 'days', 1, MAX_EXTENSION_DAYS)
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        base = lead.sprint_deadline or now
        lead.sprint_deadline = base + timedelta(days=days)
        _audit(lead, actor, 'extend',
               f'Deadline extended by {days} day{"s" if days != 1 else ""} to {lead.sprint_deadline.date().isoformat()}',
               now=now)
        logger.info("Sprint %s deadline extended %d days", lead_id, days)
        return _result(session, lead, now)


def evict_builder(lead_id: str, user_id: str, actor: str = None, reason: str = None,
                  now: datetime = None) -> Dict:
    """Remove one builder and free their slot."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        builder = _find_builder(lead, user_id)
        label = _builder_label(session, builder)

        lead.builders.remove(builder)
        _release_builders(session, lead, [user_id])
        # An evicted finalist leaves the ballot along with any votes cast for them
        build = session.get(Build, f'{lead.id}:{user_id}')
        if build is not None:
            session.delete(build)
        _audit(lead, actor, 'evict', f'{label} removed from the sprint', reason=reason, now=now)
        logger.info("Builder %s evicted from %s (%s)", user_id, lead_id, reason or 'no reason')
        return _result(session, lead, now)


def terminate_sprint(lead_id: str, actor: str = None, reason: str = None, now: datetime = None) -> Dict:
    """End the sprint with no winner and clear every builder."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)

        user_ids = [b.user_id for b in lead.builders]
        lead.builders.clear()
        _release_builders(session, lead, user_ids)

        lead.sprint_active = False
        lead.is_paused = False
        lead.voting_open = False
        lead.winner_user_id = None
        lead.status = 'terminated'
        _audit(lead, actor, 'terminate',
               f'Sprint terminated, {len(user_ids)} builder{"s" if len(user_ids) != 1 else ""} released',
               reason=reason, now=now)
        logger.info("Sprint %s terminated", lead_id)
        return _result(session, lead, now)


def nudge_builder(lead_id: str, user_id: str, actor: str = None, now: datetime = None) -> Dict:
    """Record that a nudge went out; sprint state is untouched."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        builder = _find_builder(lead, user_id)
        builder.last_nudged_at = now
        _audit(lead, actor, 'nudge', f'Nudge sent to {_builder_label(session, builder)}', now=now)
        return _result(session, lead, now)


def flag_builder(lead_id: str, user_id: str, actor: str = None, now: datetime = None) -> Dict:
    """Start the warning window after which an idle builder should be evicted."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        _require_active(lead)
        builder = _find_builder(lead, user_id)
        builder.flagged_at = now
        builder.flagged_expires_at = now + timedelta(hours=FLAG_WARNING_HOURS)
        _audit(lead, actor, 'flag',
               f'{_builder_label(session, builder)} flagged, {FLAG_WARNING_HOURS}h to submit', now=now)
        logger.info("Builder %s flagged on %s", user_id, lead_id)
        return _result(session, lead, now)


# ── Stall detection ───────────────────────────────────────────────────────────

def is_stalled(builder: ActiveBuilder, total_milestones: int, now: datetime) -> bool:
    last_update = builder.last_checkpoint_update or builder.joined_at
    if last_update is None or builder.checkpoints_completed >= total_milestones:
        return False
    if now - last_update < timedelta(hours=STALL_THRESHOLD_HOURS):
        return False
    if builder.last_nudged_at and now - builder.last_nudged_at < timedelta(hours=NUDGE_COOLDOWN_HOURS):
        return False
    return True


def find_stalled_builders(leads: Iterable[Lead], now: datetime, profiles: Dict = None) -> List[Dict]:
    """Pure sweep over leads; returns one entry per stalled builder."""
    profiles = profiles or {}
    stalled = []
    for lead in leads:
        if not lead.sprint_active:
            continue
        total = _total_milestones(lead)
        for builder in lead.builders:
            if not is_stalled(builder, total, now):
                continue
            last_update = builder.last_checkpoint_update or builder.joined_at
            profile = profiles.get(builder.user_id)
            stalled.append({
                'leadId': lead.id,
                'businessName': lead.business_name,
                'userId': builder.user_id,
                'name': (profile.name if profile else None) or builder.user_name or builder.user_id,
                'email': profile.email if profile else None,
                'checkpointsCompleted': builder.checkpoints_completed,
                'totalMilestones': total,
                'lastCheckpointUpdate': to_iso(last_update),
                'lastNudgedAt': to_iso(builder.last_nudged_at),
                'hoursSinceUpdate': round((now - last_update).total_seconds() / 3600, 1),
            })
    return stalled


def detect_stalled(now: datetime = None) -> List[Dict]:
    now = now or utcnow()
    with session_scope() as session:
        leads = session.query(Lead).filter(Lead.sprint_active.is_(True)).order_by(Lead.id).all()
        profiles = load_profiles(session, (b.user_id for lead in leads for b in lead.builders))
        stalled = find_stalled_builders(leads, now, profiles)
    logger.info("Stall sweep found %d builder(s)", len(stalled))
    return stalled
