"""
Lead repository — reads, imports and the read-side views built on lead state.

Every lead leaving this module goes through serialize_lead(), which applies
recency weighting, derives the submission window and fills builder details
from the alumni registry.
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Iterable

from bridgeit.config import (
    DEFAULT_MILESTONES, PRIORITY_HFI_THRESHOLD, SUBMISSION_WINDOW_HOURS,
)
from bridgeit.database import session_scope
from bridgeit.errors import NotFoundError, ValidationError, ConflictingStateError
from bridgeit.models.alumni import AlumniProfile
from bridgeit.models.lead import Lead
from bridgeit.services.recency import apply_recency_weights

logger = logging.getLogger('services.leads')


# ── Time helpers ──────────────────────────────────────────────────────────────

def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() + 'Z' if dt else None


def parse_timestamp(value) -> Optional[datetime]:
    """Accept datetime or ISO string (with or without Z) and return naive UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f'Invalid timestamp: {value}', code='invalid_timestamp')
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def submission_window_open(first_completion_at: Optional[datetime], now: datetime) -> bool:
    if first_completion_at is None:
        return False
    return now - first_completion_at <= timedelta(hours=SUBMISSION_WINDOW_HOURS)


def submission_window_closed(first_completion_at: Optional[datetime], now: datetime) -> bool:
    if first_completion_at is None:
        return False
    return now - first_completion_at > timedelta(hours=SUBMISSION_WINDOW_HOURS)


def milestones_for(lead: Lead) -> List[Dict]:
    return lead.milestones or DEFAULT_MILESTONES


# ── Serialization ─────────────────────────────────────────────────────────────

def load_profiles(session, user_ids: Iterable[str]) -> Dict[str, AlumniProfile]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    rows = session.query(AlumniProfile).filter(AlumniProfile.id.in_(ids)).all()
    return {row.id: row for row in rows}


def serialize_builder(builder, profile: Optional[AlumniProfile] = None) -> Dict:
    review = None
    if builder.reviewed_at is not None:
        review = {
            'qualityScore': builder.quality_score,
            'scoutReviewScore': builder.scout_review_score,
            'reviewNotes': builder.review_notes or '',
            'reviewedAt': to_iso(builder.reviewed_at),
        }
    return {
        'userId': builder.user_id,
        'name': (profile.name if profile else None) or builder.user_name or builder.user_id,
        'specialty': profile.specialty if profile else None,
        'joinedAt': to_iso(builder.joined_at),
        'checkpointsCompleted': builder.checkpoints_completed,
        'completedAt': to_iso(builder.completed_at),
        'selectedDeliverables': list(builder.selected_deliverables or []),
        'proofLinks': list(builder.proof_links or []),
        'checkpointStatuses': dict(builder.checkpoint_statuses or {}),
        'last_checkpoint_update': to_iso(builder.last_checkpoint_update),
        'last_nudged_at': to_iso(builder.last_nudged_at),
        'flagged_at': to_iso(builder.flagged_at),
        'flagged_expires_at': to_iso(builder.flagged_expires_at),
        'qualityScore': builder.quality_score,
        'scoutReview': review,
    }


def serialize_audit_entry(entry) -> Dict:
    return {
        'id': entry.id,
        'actor': entry.actor,
        'action': entry.action,
        'detail': entry.detail,
        'reason': entry.reason,
        'timestamp': to_iso(entry.created_at),
    }


def serialize_lead(lead: Lead, session=None, now: datetime = None,
                   profiles: Dict[str, AlumniProfile] = None) -> Dict:
    """Lead → response dict (recency-weighted, builder details populated)."""
    now = now or utcnow()
    if profiles is None:
        profiles = load_profiles(session, (b.user_id for b in lead.builders)) if session else {}

    data = {
        'id': lead.id,
        'business_name': lead.business_name,
        'category': lead.category or '',
        'location': lead.location or {},
        'hfi_score': lead.hfi_score,
        'friction_type': lead.friction_type or '',
        'friction_clusters': lead.friction_clusters or [],
        'recency_data': lead.recency_data or {},
        'time_on_task_estimate': lead.time_on_task_estimate or '',
        'review_count': lead.review_count or 0,
        'rating': lead.rating,
        'contact': lead.contact,
        'status': lead.status,
        'is_priority': bool(lead.is_priority),
        'discovered_at': to_iso(lead.discovered_at),
        'milestones': milestones_for(lead),
        'sprintActive': bool(lead.sprint_active),
        'maxSlots': lead.max_slots,
        'sprintDuration': lead.sprint_duration,
        'sprintStartedAt': to_iso(lead.sprint_started_at),
        'sprintDeadline': to_iso(lead.sprint_deadline),
        'isPaused': bool(lead.is_paused),
        'firstCompletionAt': to_iso(lead.first_completion_at),
        'submissionWindowOpen': submission_window_open(lead.first_completion_at, now),
        'winnerUserId': lead.winner_user_id,
        'voting_open': bool(lead.voting_open),
        'winnerAverageScore': lead.winner_average_score,
        'activeBuilders': [serialize_builder(b, profiles.get(b.user_id)) for b in lead.builders],
        'auditLog': [serialize_audit_entry(e) for e in lead.audit_log],
    }
    return apply_recency_weights(data)


# ── Repository operations ────────────────────────────────────────────────────

def get_lead(lead_id: str, now: datetime = None) -> Dict:
    """Single lead by id."""
    with session_scope() as session:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError(f'Lead {lead_id} not found', code='lead_not_found')
        return serialize_lead(lead, session, now)


def get_all_leads(now: datetime = None) -> List[Dict]:
    with session_scope() as session:
        leads = session.query(Lead).order_by(Lead.hfi_score.desc(), Lead.id).all()
        profiles = load_profiles(session, (b.user_id for lead in leads for b in lead.builders))
        return [serialize_lead(lead, now=now, profiles=profiles) for lead in leads]


def list_leads(view: str = 'main', now: datetime = None) -> Dict:
    """
    Leads for the scout dashboard.

    view='main' keeps high-HFI or promoted leads, view='all' is the full library.
    """
    leads = get_all_leads(now)
    if view != 'all':
        leads = [
            lead for lead in leads
            if (lead['hfi_score'] or 0) >= PRIORITY_HFI_THRESHOLD or lead['is_priority']
        ]

    scores = [lead['hfi_score'] or 0 for lead in leads]
    metadata = {
        'total_leads': len(leads),
        'high_priority_count': sum(1 for s in scores if s >= PRIORITY_HFI_THRESHOLD),
        'avg_hfi_score': round(sum(scores) / len(scores), 1) if scores else 0,
    }
    return {'leads': leads, 'metadata': metadata}


_IMPORT_FIELDS = [
    'business_name', 'category', 'location', 'hfi_score', 'friction_type',
    'friction_clusters', 'recency_data', 'time_on_task_estimate', 'review_count',
    'rating', 'contact', 'milestones', 'status',
]


def _is_number(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


def _validate_milestones(milestones):
    """Milestones must be a non-empty list of {id, name} numbered 1..N in order."""
    if not isinstance(milestones, list) or not milestones:
        raise ValidationError('milestones must be a non-empty list', code='invalid_field')
    for position, milestone in enumerate(milestones, start=1):
        if not isinstance(milestone, dict):
            raise ValidationError('Each milestone must be an object', code='invalid_field')
        milestone_id = milestone.get('id')
        if isinstance(milestone_id, bool) or milestone_id != position:
            raise ValidationError(f'Milestone {position} must have id {position}', code='invalid_field')
        name = milestone.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f'Milestone {position} needs a name', code='invalid_field')


def _validate_import_fields(record: Dict):
    """Shape checks for imported descriptive fields; None clears an optional field."""
    for field in ('hfi_score', 'rating'):
        if record.get(field) is not None and not _is_number(record[field]):
            raise ValidationError(f'{field} must be a number', code='invalid_field')
    review_count = record.get('review_count')
    if review_count is not None and (isinstance(review_count, bool) or not isinstance(review_count, int)):
        raise ValidationError('review_count must be an integer', code='invalid_field')
    for field in ('location', 'recency_data', 'contact'):
        if record.get(field) is not None and not isinstance(record[field], dict):
            raise ValidationError(f'{field} must be an object', code='invalid_field')
    clusters = record.get('friction_clusters')
    if clusters is not None and (
        not isinstance(clusters, list) or not all(isinstance(c, dict) for c in clusters)
    ):
        raise ValidationError('friction_clusters must be a list of objects', code='invalid_field')
    for field in ('business_name', 'category', 'friction_type', 'time_on_task_estimate', 'status'):
        if record.get(field) is not None and not isinstance(record[field], str):
            raise ValidationError(f'{field} must be a string', code='invalid_field')
    if record.get('milestones') is not None:
        _validate_milestones(record['milestones'])


def put_lead(record: Dict) -> Dict:
    """
    Insert or update a sourced lead (descriptive fields only).

    Sprint state is never writable through this path.
    """
    lead_id = record.get('id')
    if not lead_id or not isinstance(lead_id, str):
        raise ValidationError('Lead id is required', code='missing_field')
    if not record.get('business_name'):
        raise ValidationError('business_name is required', code='missing_field')
    _validate_import_fields(record)

    discovered_at = parse_timestamp(record.get('discovered_at'))

    with session_scope() as session:
        lead = session.get(Lead, lead_id)
        created = lead is None
        if created:
            lead = Lead(id=lead_id, status='qualified', is_priority=False,
                        sprint_active=False, is_paused=False, voting_open=False)
            session.add(lead)
        elif lead.sprint_active and 'milestones' in record and record['milestones'] != lead.milestones:
            raise ConflictingStateError(
                'Milestones cannot change while a sprint is active', code='sprint_active',
            )
        for field in _IMPORT_FIELDS:
            if field in record:
                setattr(lead, field, record[field])
        if discovered_at:
            lead.discovered_at = discovered_at
        session.flush()
        logger.info("Lead %s %s", lead_id, 'imported' if created else 'updated')
        return serialize_lead(lead, session)


def promote_lead(lead_id: str) -> Dict:
    """Mark a library lead as priority so it shows on the main view."""
    with session_scope() as session:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError(f'Lead {lead_id} not found', code='lead_not_found')
        if not lead.is_priority:
            lead.is_priority = True
            lead.updated_at = utcnow()
            logger.info("Lead %s promoted", lead_id)
        session.flush()
        return serialize_lead(lead, session)


# ── Checkpoint submission views ──────────────────────────────────────────────

def _submission_rows(session, statuses=None) -> List[Dict]:
    leads = session.query(Lead).filter(Lead.sprint_active.is_(True)).all()
    profiles = load_profiles(session, (b.user_id for lead in leads for b in lead.builders))
    rows = []
    for lead in leads:
        names = {m['id']: m['name'] for m in milestones_for(lead)}
        location = lead.location or {}
        for builder in lead.builders:
            profile = profiles.get(builder.user_id)
            for key, cp in (builder.checkpoint_statuses or {}).items():
                if statuses and cp.get('status') not in statuses:
                    continue
                milestone_id = int(key)
                rows.append({
                    'id': f'{lead.id}:{builder.user_id}:{milestone_id}',
                    'leadId': lead.id,
                    'businessName': lead.business_name,
                    'neighborhood': location.get('neighborhood', ''),
                    'builderId': builder.user_id,
                    'builderName': (profile.name if profile else None) or builder.user_name or builder.user_id,
                    'milestoneId': milestone_id,
                    'milestoneName': names.get(milestone_id, f'Milestone {milestone_id}'),
                    'proofLink': cp.get('proofLink'),
                    'submittedAt': cp.get('submittedAt'),
                    'status': cp.get('status'),
                })
    rows.sort(key=lambda r: r['submittedAt'] or '', reverse=True)
    return rows


def list_pending_proofs() -> List[Dict]:
    """Scout verify queue: submitted checkpoints awaiting a decision, newest first."""
    with session_scope() as session:
        return _submission_rows(session, statuses={'submitted'})


def recent_submissions(limit: int = 10) -> List[Dict]:
    with session_scope() as session:
        return _submission_rows(session)[:max(limit, 0)]
