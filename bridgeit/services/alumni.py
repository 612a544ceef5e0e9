"""
Alumni registry — builder directory, availability and leaderboard.
"""
import logging
from typing import Dict, List

from bridgeit.config import MAX_CONCURRENT_BUILDS
from bridgeit.database import session_scope
from bridgeit.errors import NotFoundError, ValidationError
from bridgeit.models.alumni import AlumniProfile
from bridgeit.models.builder_assignment import BuilderAssignment

logger = logging.getLogger('services.alumni')


def serialize_alumni(profile: AlumniProfile, assignment: BuilderAssignment = None) -> Dict:
    completed = list(profile.completed_builds or [])
    return {
        'id': profile.id,
        'name': profile.name,
        'email': profile.email or '',
        'specialty': profile.specialty or '',
        'qualityRating': profile.quality_rating,
        'currentBuildCount': profile.current_build_count or 0,
        'completedBuilds': completed,
        'completedCount': len(completed),
        'activeLeadId': assignment.lead_id if assignment else None,
        'available': assignment is None and (profile.current_build_count or 0) < MAX_CONCURRENT_BUILDS,
    }


def _assignments(session) -> Dict[str, BuilderAssignment]:
    return {a.builder_id: a for a in session.query(BuilderAssignment).all()}


def get_alumni(user_id: str) -> Dict:
    with session_scope() as session:
        profile = session.get(AlumniProfile, user_id)
        if profile is None:
            raise NotFoundError(f'Builder {user_id} not found in alumni registry', code='builder_not_found')
        return serialize_alumni(profile, session.get(BuilderAssignment, user_id))


def list_alumni(specialty: str = None, available: bool = None) -> List[Dict]:
    """Directory listing; specialty match is case-insensitive."""
    with session_scope() as session:
        assignments = _assignments(session)
        profiles = session.query(AlumniProfile).order_by(AlumniProfile.name).all()
        rows = [serialize_alumni(p, assignments.get(p.id)) for p in profiles]

    if specialty:
        rows = [r for r in rows if r['specialty'].lower() == specialty.lower()]
    if available is not None:
        rows = [r for r in rows if r['available'] == available]
    return rows


def leaderboard(limit: int = 10) -> List[Dict]:
    """Ranked by completed builds, then quality rating."""
    rows = list_alumni()
    rows.sort(key=lambda r: (-r['completedCount'], -(r['qualityRating'] or 0), r['name']))
    return [{**row, 'rank': i + 1} for i, row in enumerate(rows[:max(limit, 0)])]


def put_alumni(record: Dict) -> Dict:
    """Insert or update a directory entry. Build counters are not writable here."""
    user_id = record.get('id')
    if not user_id or not isinstance(user_id, str):
        raise ValidationError('Alumni id is required', code='missing_field')
    if not record.get('name'):
        raise ValidationError('name is required', code='missing_field')

    with session_scope() as session:
        profile = session.get(AlumniProfile, user_id)
        if profile is None:
            profile = AlumniProfile(id=user_id, current_build_count=0, completed_builds=[])
            session.add(profile)
        profile.name = record['name']
        for field in ('email', 'specialty', 'quality_rating'):
            if field in record:
                setattr(profile, field, record[field])
        session.flush()
        logger.info("Alumni %s saved", user_id)
        return serialize_alumni(profile, session.get(BuilderAssignment, user_id))
