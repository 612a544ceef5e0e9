"""
Peer voting — alternative winner path for leads with several finalists.

open_voting materializes one Build per finalist, cast_vote records a 1-5 score
(one per voter per build), close_voting awards the highest mean score through
the same award_winner() transition the scout-review path uses.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from bridgeit.config import (
    MIN_VOTE_SCORE, MAX_VOTE_SCORE, MIN_VOTES_TO_CLOSE, MIN_FINALISTS_FOR_VOTING,
)
from bridgeit.database import session_scope
from bridgeit.errors import (
    NotFoundError, ConflictingStateError, PreconditionFailedError,
)
from bridgeit.models.build import Build, Vote
from bridgeit.models.lead import Lead
from bridgeit.services.leads import utcnow, load_profiles
from bridgeit.services.scoring import pick_highest
from bridgeit.services.sprints import (
    lock_lead, require_int, require_text, finalists_for, award_winner,
)

logger = logging.getLogger('services.voting')


def _average(build: Build) -> Optional[float]:
    if not build.votes:
        return None
    return sum(v.score for v in build.votes) / len(build.votes)


def _builds_for(session, lead_id: str) -> List[Build]:
    return (
        session.query(Build)
        .filter(Build.lead_id == lead_id)
        .order_by(Build.ordinal, Build.id)
        .all()
    )


def _serialize_build(build: Build, voter_id: str = None) -> Dict:
    average = _average(build)
    data = {
        'id': build.id,
        'builder_id': build.builder_id,
        'builder_name': build.builder_name,
        'deployed_url': build.deployed_url,
        'voteCount': len(build.votes),
        'averageScore': round(average, 2) if average is not None else None,
    }
    if voter_id:
        data['hasVoted'] = any(v.voter_id == voter_id for v in build.votes)
    return data


def _voting_state(session, lead: Lead, voter_id: str = None) -> Dict:
    builds = _builds_for(session, lead.id)
    return {
        'lead_id': lead.id,
        'business_name': lead.business_name,
        'voting_open': bool(lead.voting_open),
        'winnerUserId': lead.winner_user_id,
        'winnerAverageScore': lead.winner_average_score,
        'totalVotes': sum(len(b.votes) for b in builds),
        'minVotesRequired': MIN_VOTES_TO_CLOSE,
        'builds': [_serialize_build(b, voter_id) for b in builds],
    }


def open_voting(lead_id: str, now: datetime = None) -> Dict:
    """Open the ballot. Calling it again on an open ballot is a no-op."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        if lead.winner_user_id:
            raise ConflictingStateError('A winner has already been decided', code='winner_decided')
        if lead.voting_open:
            return _voting_state(session, lead)

        finalists = finalists_for(lead)
        if len(finalists) < MIN_FINALISTS_FOR_VOTING:
            raise PreconditionFailedError(
                f'Voting needs at least {MIN_FINALISTS_FOR_VOTING} finalists', code='not_enough_finalists',
            )

        profiles = load_profiles(session, (b.user_id for b in finalists))
        for ordinal, builder in enumerate(finalists):
            build_id = f'{lead.id}:{builder.user_id}'
            if session.get(Build, build_id) is not None:
                continue
            profile = profiles.get(builder.user_id)
            links = builder.proof_links or []
            session.add(Build(
                id=build_id,
                lead_id=lead.id,
                builder_id=builder.user_id,
                builder_name=(profile.name if profile else None) or builder.user_name or builder.user_id,
                business_name=lead.business_name,
                deployed_url=links[-1] if links else None,
                ordinal=ordinal,
                created_at=now,
            ))

        lead.voting_open = True
        lead.updated_at = now
        session.flush()
        logger.info("Voting opened on %s with %d builds", lead_id, len(finalists))
        return _voting_state(session, lead)


def cast_vote(build_id: str, voter_id, score, now: datetime = None) -> Dict:
    """Record one voter's score for one build."""
    voter_id = require_text(voter_id, 'voter_id')
    score = require_int(score, 'score', MIN_VOTE_SCORE, MAX_VOTE_SCORE)
    now = now or utcnow()

    with session_scope() as session:
        build = session.get(Build, build_id)
        if build is None:
            raise NotFoundError(f'Build {build_id} not found', code='build_not_found')
        lead = lock_lead(session, build.lead_id)
        if lead.winner_user_id:
            raise ConflictingStateError('A winner has already been decided', code='winner_decided')
        if not lead.voting_open:
            raise ConflictingStateError('Voting is not open for this lead', code='voting_closed')

        existing = (
            session.query(Vote)
            .filter(Vote.build_id == build_id, Vote.voter_id == voter_id)
            .first()
        )
        if existing is not None:
            raise ConflictingStateError('You have already voted for this build', code='duplicate_vote')

        build.votes.append(Vote(voter_id=voter_id, score=score, created_at=now))
        lead.updated_at = now
        try:
            session.flush()
        except IntegrityError as e:
            raise ConflictingStateError('You have already voted for this build', code='duplicate_vote') from e

        logger.info("Vote recorded on %s by %s (%d)", build_id, voter_id, score)
        return _serialize_build(build, voter_id)


def close_voting(lead_id: str, now: datetime = None) -> Dict:
    """Award the build with the highest mean score; earlier finalist wins ties."""
    now = now or utcnow()

    with session_scope() as session:
        lead = lock_lead(session, lead_id)
        if lead.winner_user_id:
            raise ConflictingStateError('A winner has already been decided', code='winner_decided')
        if not lead.voting_open:
            raise ConflictingStateError('Voting is not open for this lead', code='voting_closed')

        builds = _builds_for(session, lead.id)
        total_votes = sum(len(b.votes) for b in builds)
        if total_votes < MIN_VOTES_TO_CLOSE:
            raise PreconditionFailedError(
                f'Need at least {MIN_VOTES_TO_CLOSE} votes to close ({total_votes} so far)',
                code='not_enough_votes',
            )

        best = pick_highest([b for b in builds if b.votes], key=_average)
        average = round(_average(best), 2)
        award_winner(session, lead, best.builder_id, now, average_score=average)
        lead.updated_at = now
        session.flush()
        logger.info("Voting closed on %s — winner %s (avg %.2f over %d votes)",
                    lead_id, best.builder_id, average, total_votes)
        return _voting_state(session, lead)


def get_voting_state(lead_id: str, voter_id: str = None) -> Dict:
    with session_scope() as session:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError(f'Lead {lead_id} not found', code='lead_not_found')
        return _voting_state(session, lead, voter_id)


def list_open_voting(voter_id: str = None) -> Dict:
    """Every lead with an open ballot, for the voting page."""
    with session_scope() as session:
        leads = (
            session.query(Lead)
            .filter(Lead.voting_open.is_(True))
            .order_by(Lead.id)
            .all()
        )
        return {'leads': [_voting_state(session, lead, voter_id) for lead in leads]}
