"""Tests for bridgeit.services.sprints — lifecycle engine against an in-memory database."""
from datetime import datetime, timedelta

import pytest
from unittest.mock import patch

from bridgeit.errors import (
    NotFoundError, ValidationError, CapacityExceededError,
    ConflictingStateError, PreconditionFailedError,
)
from bridgeit.models.alumni import AlumniProfile
from bridgeit.models.builder_assignment import BuilderAssignment
from bridgeit.services import sprints
from bridgeit.services.leads import get_lead

T0 = datetime(2026, 3, 2, 9, 0, 0)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _launch(lead_id, slots=2, weeks=3, now=T0):
    return sprints.launch_sprint(lead_id, slots, weeks, now=now)


def _complete(lead_id, user_id, at):
    """Submit and verify all four milestones at the given time."""
    lead = None
    for milestone in range(1, 5):
        sprints.submit_checkpoint(lead_id, user_id, milestone, f'https://github.com/{user_id}/m{milestone}', now=at)
        lead = sprints.verify_checkpoint(lead_id, user_id, milestone, True, now=at)
    return lead


def _builder(lead, user_id):
    return next(b for b in lead['activeBuilders'] if b['userId'] == user_id)


@pytest.fixture
def sprint(make_lead, make_alumni):
    """Launched 2-slot sprint with three registered builders."""
    lead_id = make_lead()
    for user_id in ('alice', 'bob', 'carol'):
        make_alumni(user_id)
    _launch(lead_id)
    return lead_id


# ── Launch ───────────────────────────────────────────────────────────────────

class TestLaunchSprint:
    """launch_sprint() validation and initial state."""

    def test_initializes_sprint_state(self, make_lead):
        lead_id = make_lead()
        lead = _launch(lead_id, slots=3, weeks=2)
        assert lead['sprintActive'] is True
        assert lead['maxSlots'] == 3
        assert lead['sprintDuration'] == 2
        assert lead['activeBuilders'] == []
        assert lead['sprintStartedAt'] == T0.isoformat() + 'Z'
        assert lead['sprintDeadline'] == (T0 + timedelta(weeks=2)).isoformat() + 'Z'
        assert lead['status'] == 'matched'

    @pytest.mark.parametrize('slots,weeks', [(0, 2), (5, 2), (2, 1), (2, 5), ('2', 3), (True, 3)])
    def test_rejects_out_of_range_parameters(self, make_lead, slots, weeks):
        lead_id = make_lead()
        with pytest.raises(ValidationError):
            sprints.launch_sprint(lead_id, slots, weeks, now=T0)
        assert get_lead(lead_id)['sprintActive'] is False

    def test_already_active_conflicts(self, sprint):
        with pytest.raises(ConflictingStateError) as exc:
            _launch(sprint)
        assert exc.value.code == 'sprint_already_active'

    def test_unknown_lead_not_found(self):
        with pytest.raises(NotFoundError):
            _launch('missing')

    def test_relaunch_after_termination(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.terminate_sprint(sprint, now=T0)
        lead = _launch(sprint, slots=1, now=T0 + timedelta(days=1))
        assert lead['sprintActive'] is True
        assert lead['activeBuilders'] == []
        assert lead['firstCompletionAt'] is None


# ── Join ─────────────────────────────────────────────────────────────────────

class TestJoinSprint:
    """join_sprint() — capacity, uniqueness and ordering of refusals."""

    def test_slots_fill_then_refuse(self, sprint):
        lead = sprints.join_sprint(sprint, 'alice', now=T0)
        assert len(lead['activeBuilders']) == 1
        lead = sprints.join_sprint(sprint, 'bob', now=T0)
        assert len(lead['activeBuilders']) == 2
        with pytest.raises(CapacityExceededError) as exc:
            sprints.join_sprint(sprint, 'carol', now=T0)
        assert exc.value.code == 'slots_full'

    def test_defaults_deliverables_to_full_project(self, sprint):
        lead = sprints.join_sprint(sprint, 'alice', now=T0)
        builder = _builder(lead, 'alice')
        assert builder['selectedDeliverables'] == ['full_project']
        assert builder['checkpointsCompleted'] == 0
        assert builder['name'] == 'Alice'

    def test_keeps_selected_deliverables(self, sprint):
        lead = sprints.join_sprint(sprint, 'alice', selected_deliverables=['ordering_page', 'sms_bot'], now=T0)
        assert _builder(lead, 'alice')['selectedDeliverables'] == ['ordering_page', 'sms_bot']

    def test_unknown_builder_not_found(self, sprint):
        with pytest.raises(NotFoundError) as exc:
            sprints.join_sprint(sprint, 'nobody', now=T0)
        assert exc.value.code == 'builder_not_found'

    def test_concurrent_build_cap(self, sprint, make_alumni):
        make_alumni('dave', current_build_count=3)
        with pytest.raises(CapacityExceededError) as exc:
            sprints.join_sprint(sprint, 'dave', now=T0)
        assert exc.value.code == 'max_concurrent_builds'

    def test_duplicate_join(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        with pytest.raises(ConflictingStateError) as exc:
            sprints.join_sprint(sprint, 'alice', now=T0)
        assert exc.value.code == 'duplicate_join'

    def test_builder_on_another_lead_is_refused(self, sprint, make_lead):
        other = make_lead('lead-corner-deli', business_name='Corner Deli')
        _launch(other)
        sprints.join_sprint(sprint, 'alice', now=T0)
        with pytest.raises(ConflictingStateError) as exc:
            sprints.join_sprint(other, 'alice', now=T0)
        assert exc.value.code == 'already_elsewhere'

    def test_already_elsewhere_checked_before_slots_full(self, sprint, make_lead):
        other = make_lead('lead-corner-deli', business_name='Corner Deli')
        _launch(other, slots=1)
        sprints.join_sprint(other, 'bob', now=T0)
        sprints.join_sprint(sprint, 'alice', now=T0)
        with pytest.raises(ConflictingStateError) as exc:
            sprints.join_sprint(other, 'alice', now=T0)
        assert exc.value.code == 'already_elsewhere'

    def test_racing_join_loses_on_assignment_key(self, sprint, make_lead, fetch):
        """Two joins that both pass the pre-check: the storage constraint lets only one through."""
        other = make_lead('lead-corner-deli', business_name='Corner Deli')
        _launch(other)
        sprints.join_sprint(sprint, 'alice', now=T0)

        with patch('bridgeit.services.sprints._assignment_for', return_value=None):
            with pytest.raises(ConflictingStateError):
                sprints.join_sprint(other, 'alice', now=T0)

        assert get_lead(other)['activeBuilders'] == []
        assignments = fetch(BuilderAssignment, builder_id='alice')
        assert [a.lead_id for a in assignments] == [sprint]
        assert fetch(AlumniProfile, id='alice')[0].current_build_count == 1

    def test_join_records_assignment_and_count(self, sprint, fetch):
        sprints.join_sprint(sprint, 'alice', now=T0)
        assert fetch(BuilderAssignment, builder_id='alice')[0].lead_id == sprint
        assert fetch(AlumniProfile, id='alice')[0].current_build_count == 1

    def test_inactive_sprint_refuses_join(self, make_lead, make_alumni):
        lead_id = make_lead()
        make_alumni('alice')
        with pytest.raises(ConflictingStateError) as exc:
            sprints.join_sprint(lead_id, 'alice', now=T0)
        assert exc.value.code == 'sprint_not_active'


# ── Checkpoints ──────────────────────────────────────────────────────────────

class TestSubmitCheckpoint:
    """submit_checkpoint() — proof-link allow-list and pending status."""

    @pytest.fixture(autouse=True)
    def _joined(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)

    def test_rejects_foreign_host(self, sprint):
        with pytest.raises(ValidationError) as exc:
            sprints.submit_checkpoint(sprint, 'alice', 1, 'https://evil.com/x', now=T0)
        assert exc.value.code == 'invalid_proof_link'

    def test_rejects_lookalike_host(self, sprint):
        with pytest.raises(ValidationError):
            sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com.evil.com/x', now=T0)

    def test_accepts_github_and_loom(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/y', now=T0)
        lead = sprints.submit_checkpoint(sprint, 'alice', 2, 'https://www.loom.com/share/abc', now=T0)
        builder = _builder(lead, 'alice')
        assert builder['proofLinks'] == ['https://github.com/x/y', 'https://www.loom.com/share/abc']

    def test_records_submitted_without_advancing(self, sprint):
        later = T0 + timedelta(hours=5)
        lead = sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/y', now=later)
        builder = _builder(lead, 'alice')
        assert builder['checkpointStatuses']['1']['status'] == 'submitted'
        assert builder['checkpointsCompleted'] == 0
        assert builder['last_checkpoint_update'] == later.isoformat() + 'Z'

    def test_duplicate_link_not_appended(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/y', now=T0)
        lead = sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/y', now=T0)
        assert _builder(lead, 'alice')['proofLinks'] == ['https://github.com/x/y']

    @pytest.mark.parametrize('milestone', [0, 5, '1', None])
    def test_rejects_unknown_milestone(self, sprint, milestone):
        with pytest.raises(ValidationError):
            sprints.submit_checkpoint(sprint, 'alice', milestone, 'https://github.com/x/y', now=T0)

    def test_non_member_not_found(self, sprint):
        with pytest.raises(NotFoundError):
            sprints.submit_checkpoint(sprint, 'bob', 1, 'https://github.com/x/y', now=T0)

    def test_resubmitting_verified_milestone_keeps_it_verified(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/y', now=T0)
        sprints.verify_checkpoint(sprint, 'alice', 1, True, now=T0)
        lead = sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/x/z', now=T0)
        builder = _builder(lead, 'alice')
        assert builder['checkpointStatuses']['1']['status'] == 'verified'
        assert builder['checkpointsCompleted'] == 1

    def test_auto_verify_mode_advances_immediately(self, sprint):
        with patch('bridgeit.services.sprints.AUTO_VERIFY_CHECKPOINTS', True):
            lead = sprints.submit_checkpoint(sprint, 'alice', 2, 'https://github.com/x/y', now=T0)
        builder = _builder(lead, 'alice')
        assert builder['checkpointsCompleted'] == 2
        assert builder['checkpointStatuses']['2']['status'] == 'verified'


class TestVerifyCheckpoint:
    """verify_checkpoint() — approval, rejection, monotonic progress, first completion."""

    @pytest.fixture(autouse=True)
    def _joined(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)

    def test_approve_advances_to_milestone(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 2, 'https://github.com/a/2', now=T0)
        lead = sprints.verify_checkpoint(sprint, 'alice', 2, True, now=T0)
        assert _builder(lead, 'alice')['checkpointsCompleted'] == 2

    def test_reject_leaves_progress(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1', now=T0)
        lead = sprints.verify_checkpoint(sprint, 'alice', 1, False, notes='Repo is empty', now=T0)
        builder = _builder(lead, 'alice')
        assert builder['checkpointsCompleted'] == 0
        assert builder['checkpointStatuses']['1']['status'] == 'rejected'
        assert builder['checkpointStatuses']['1']['reviewNotes'] == 'Repo is empty'

    def test_rejected_can_be_resubmitted(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1', now=T0)
        sprints.verify_checkpoint(sprint, 'alice', 1, False, now=T0)
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1b', now=T0)
        lead = sprints.verify_checkpoint(sprint, 'alice', 1, True, now=T0)
        assert _builder(lead, 'alice')['checkpointsCompleted'] == 1

    def test_progress_never_decreases(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 3, 'https://github.com/a/3', now=T0)
        sprints.verify_checkpoint(sprint, 'alice', 3, True, now=T0)
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1', now=T0)
        lead = sprints.verify_checkpoint(sprint, 'alice', 1, True, now=T0)
        assert _builder(lead, 'alice')['checkpointsCompleted'] == 3

    def test_without_submission_conflicts(self, sprint):
        with pytest.raises(ConflictingStateError) as exc:
            sprints.verify_checkpoint(sprint, 'alice', 1, True, now=T0)
        assert exc.value.code == 'no_pending_submission'

    def test_approved_must_be_boolean(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1', now=T0)
        with pytest.raises(ValidationError):
            sprints.verify_checkpoint(sprint, 'alice', 1, 'yes', now=T0)

    def test_first_completion_set_once(self, sprint):
        first = T0 + timedelta(days=4)
        lead = _complete(sprint, 'alice', first)
        assert lead['firstCompletionAt'] == first.isoformat() + 'Z'
        assert _builder(lead, 'alice')['completedAt'] == first.isoformat() + 'Z'

        lead = _complete(sprint, 'bob', first + timedelta(hours=3))
        assert lead['firstCompletionAt'] == first.isoformat() + 'Z'

    def test_submission_window_is_derived_from_clock(self, sprint):
        first = T0 + timedelta(days=4)
        _complete(sprint, 'alice', first)
        assert get_lead(sprint, now=first + timedelta(hours=47))['submissionWindowOpen'] is True
        assert get_lead(sprint, now=first + timedelta(hours=48))['submissionWindowOpen'] is True
        assert get_lead(sprint, now=first + timedelta(hours=49))['submissionWindowOpen'] is False

    def test_window_closed_before_any_completion(self, sprint):
        assert get_lead(sprint, now=T0)['submissionWindowOpen'] is False


# ── Scout review & winner ────────────────────────────────────────────────────

class TestWinnerSelection:
    """submit_scout_review() / calculate_winner() — preconditions, scoring, award."""

    FIRST = T0 + timedelta(days=4)
    CLOSED = FIRST + timedelta(hours=72)

    @pytest.fixture
    def finalists(self, sprint):
        # bob joins 5h later, so his inferred completion trails by 5h → pace 90
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0 + timedelta(hours=5))
        _complete(sprint, 'alice', self.FIRST)
        _complete(sprint, 'bob', self.FIRST + timedelta(hours=10))
        return sprint

    def test_calculate_before_window_closes(self, finalists):
        with pytest.raises(PreconditionFailedError) as exc:
            sprints.calculate_winner(finalists, now=self.FIRST + timedelta(hours=12))
        assert exc.value.code == 'window_open'

    def test_calculate_without_completion(self, sprint):
        with pytest.raises(PreconditionFailedError):
            sprints.calculate_winner(sprint, now=self.CLOSED)

    def test_calculate_with_missing_review(self, finalists):
        sprints.submit_scout_review(finalists, 'alice', 80, now=self.FIRST)
        with pytest.raises(PreconditionFailedError) as exc:
            sprints.calculate_winner(finalists, now=self.CLOSED)
        assert exc.value.code == 'reviews_pending'
        assert 'bob' in exc.value.message

    def test_review_score_range(self, finalists):
        with pytest.raises(ValidationError):
            sprints.submit_scout_review(finalists, 'alice', 101, now=self.CLOSED)
        with pytest.raises(ValidationError):
            sprints.submit_scout_review(finalists, 'alice', 50, scout_review_score=-1, now=self.CLOSED)

    def test_review_defaults_secondary_score(self, finalists):
        lead = sprints.submit_scout_review(finalists, 'alice', 77, review_notes='Clean', now=self.FIRST)
        review = _builder(lead, 'alice')['scoutReview']
        assert review['qualityScore'] == 77
        assert review['scoutReviewScore'] == 77
        assert review['reviewNotes'] == 'Clean'

    def test_reviews_inside_window_do_not_award(self, finalists):
        sprints.submit_scout_review(finalists, 'alice', 70, now=self.FIRST + timedelta(hours=20))
        lead = sprints.submit_scout_review(finalists, 'bob', 90, now=self.FIRST + timedelta(hours=20))
        assert lead['winnerUserId'] is None
        assert 'scoreBreakdown' not in lead

    def test_last_review_after_window_awards(self, finalists, fetch):
        sprints.submit_scout_review(finalists, 'alice', 70, now=self.CLOSED)
        lead = sprints.submit_scout_review(finalists, 'bob', 90, now=self.CLOSED)

        # alice: 100*.3 + 70*.5 + 70*.2 = 79 ; bob: 90*.3 + 90*.5 + 90*.2 = 90
        assert lead['winnerUserId'] == 'bob'
        assert lead['status'] == 'awarded'
        assert lead['sprintActive'] is False
        totals = {s['userId']: s['totalScore'] for s in lead['scoreBreakdown']}
        assert totals == {'alice': 79.0, 'bob': 90.0}

        assert fetch(BuilderAssignment, lead_id=finalists) == []
        bob = fetch(AlumniProfile, id='bob')[0]
        assert bob.current_build_count == 0
        assert bob.completed_builds[0]['leadId'] == finalists

    def test_explicit_calculation_after_reviews(self, finalists):
        sprints.submit_scout_review(finalists, 'alice', 95, now=self.FIRST)
        sprints.submit_scout_review(finalists, 'bob', 60, now=self.FIRST)
        lead = sprints.calculate_winner(finalists, now=self.CLOSED)
        assert lead['winnerUserId'] == 'alice'
        assert [s['userId'] for s in lead['scoreBreakdown']] == ['alice', 'bob']

    def test_second_calculation_conflicts(self, finalists):
        sprints.submit_scout_review(finalists, 'alice', 95, now=self.FIRST)
        sprints.submit_scout_review(finalists, 'bob', 60, now=self.FIRST)
        sprints.calculate_winner(finalists, now=self.CLOSED)
        with pytest.raises(ConflictingStateError):
            sprints.calculate_winner(finalists, now=self.CLOSED)

    def test_tie_goes_to_earlier_finalist(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)
        _complete(sprint, 'alice', self.FIRST)
        _complete(sprint, 'bob', self.FIRST)
        sprints.submit_scout_review(sprint, 'bob', 80, now=self.FIRST)
        sprints.submit_scout_review(sprint, 'alice', 80, now=self.FIRST)
        lead = sprints.calculate_winner(sprint, now=self.CLOSED)
        assert lead['winnerUserId'] == 'alice'

    def test_late_finisher_excluded_from_pool(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)
        _complete(sprint, 'alice', self.FIRST)
        _complete(sprint, 'bob', self.FIRST + timedelta(hours=49))
        lead = sprints.submit_scout_review(sprint, 'alice', 50, now=self.CLOSED)
        assert lead['winnerUserId'] == 'alice'
        assert [s['userId'] for s in lead['scoreBreakdown']] == ['alice']

    def test_slow_verification_does_not_make_finisher_late(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)
        _complete(sprint, 'alice', self.FIRST)
        submitted = self.FIRST + timedelta(hours=10)
        for milestone in range(1, 5):
            sprints.submit_checkpoint(sprint, 'bob', milestone, f'https://github.com/bob/m{milestone}', now=submitted)
        for milestone in range(1, 5):
            lead = sprints.verify_checkpoint(sprint, 'bob', milestone, True, now=self.FIRST + timedelta(hours=50))
        assert _builder(lead, 'bob')['completedAt'] == submitted.isoformat() + 'Z'
        assert lead['firstCompletionAt'] == self.FIRST.isoformat() + 'Z'

        reviewed = self.FIRST + timedelta(hours=60)
        sprints.submit_scout_review(sprint, 'alice', 10, now=reviewed)
        lead = sprints.submit_scout_review(sprint, 'bob', 100, now=reviewed)
        assert lead['winnerUserId'] == 'bob'
        assert [s['userId'] for s in lead['scoreBreakdown']] == ['alice', 'bob']

    def test_review_refused_after_award(self, finalists):
        sprints.submit_scout_review(finalists, 'alice', 70, now=self.CLOSED)
        sprints.submit_scout_review(finalists, 'bob', 90, now=self.CLOSED)
        with pytest.raises(ConflictingStateError) as exc:
            sprints.submit_scout_review(finalists, 'alice', 100, now=self.CLOSED)
        assert exc.value.code == 'winner_decided'
        review = _builder(get_lead(finalists), 'alice')['scoutReview']
        assert review['qualityScore'] == 70

    def test_late_finisher_kept_when_policy_includes(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)
        _complete(sprint, 'alice', self.FIRST)
        _complete(sprint, 'bob', self.FIRST + timedelta(hours=49))
        with patch('bridgeit.services.sprints.LATE_FINALIST_POLICY', 'include'):
            lead = sprints.submit_scout_review(sprint, 'alice', 50, now=self.CLOSED)
            assert lead['winnerUserId'] is None
            with pytest.raises(PreconditionFailedError):
                sprints.calculate_winner(sprint, now=self.CLOSED)


# ── Interventions ────────────────────────────────────────────────────────────

class TestInterventions:
    """Scout interventions append audit entries and respect sprint state."""

    @pytest.fixture(autouse=True)
    def _joined(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)

    def test_pause_and_resume(self, sprint):
        lead = sprints.pause_sprint(sprint, actor='Scout Maria', now=T0)
        assert lead['isPaused'] is True
        lead = sprints.resume_sprint(sprint, actor='Scout Maria', now=T0)
        assert lead['isPaused'] is False
        assert [e['action'] for e in lead['auditLog']] == ['pause', 'resume']
        assert lead['auditLog'][0]['actor'] == 'Scout Maria'

    def test_pause_keeps_deadline(self, sprint):
        before = get_lead(sprint)['sprintDeadline']
        assert sprints.pause_sprint(sprint, now=T0)['sprintDeadline'] == before

    def test_extend_deadline(self, sprint):
        lead = sprints.extend_deadline(sprint, 3, now=T0)
        assert lead['sprintDeadline'] == (T0 + timedelta(weeks=3, days=3)).isoformat() + 'Z'
        assert lead['auditLog'][-1]['action'] == 'extend'

    @pytest.mark.parametrize('days', [0, -2, 31, '3'])
    def test_extend_rejects_bad_days(self, sprint, days):
        with pytest.raises(ValidationError):
            sprints.extend_deadline(sprint, days, now=T0)

    def test_evict_frees_slot(self, sprint, fetch):
        lead = sprints.evict_builder(sprint, 'alice', actor='Scout Maria', reason='No-show', now=T0)
        assert [b['userId'] for b in lead['activeBuilders']] == ['bob']
        entry = lead['auditLog'][-1]
        assert entry['action'] == 'evict'
        assert entry['reason'] == 'No-show'
        assert fetch(BuilderAssignment, builder_id='alice') == []
        assert fetch(AlumniProfile, id='alice')[0].current_build_count == 0

        lead = sprints.join_sprint(sprint, 'carol', now=T0)
        assert len(lead['activeBuilders']) == 2

    def test_evict_unknown_builder(self, sprint):
        with pytest.raises(NotFoundError):
            sprints.evict_builder(sprint, 'carol', now=T0)

    def test_terminate_clears_everything(self, sprint, fetch):
        lead = sprints.terminate_sprint(sprint, actor='Scout Maria', reason='Owner withdrew', now=T0)
        assert lead['sprintActive'] is False
        assert lead['activeBuilders'] == []
        assert lead['winnerUserId'] is None
        assert lead['status'] == 'terminated'
        assert lead['auditLog'][-1]['action'] == 'terminate'
        assert fetch(BuilderAssignment) == []

    def test_terminate_twice_conflicts(self, sprint):
        sprints.terminate_sprint(sprint, now=T0)
        with pytest.raises(ConflictingStateError):
            sprints.terminate_sprint(sprint, now=T0)

    def test_nudge_stamps_only_timestamp(self, sprint):
        later = T0 + timedelta(days=3)
        lead = sprints.nudge_builder(sprint, 'alice', now=later)
        alice = _builder(lead, 'alice')
        assert alice['last_nudged_at'] == later.isoformat() + 'Z'
        assert alice['checkpointsCompleted'] == 0
        assert lead['sprintActive'] is True
        assert lead['auditLog'][-1]['action'] == 'nudge'

    def test_flag_sets_five_hour_window(self, sprint):
        lead = sprints.flag_builder(sprint, 'bob', now=T0)
        bob = _builder(lead, 'bob')
        assert bob['flagged_at'] == T0.isoformat() + 'Z'
        assert bob['flagged_expires_at'] == (T0 + timedelta(hours=5)).isoformat() + 'Z'

    def test_audit_log_is_append_only(self, sprint):
        sprints.pause_sprint(sprint, now=T0)
        sprints.extend_deadline(sprint, 2, now=T0)
        first_ids = [e['id'] for e in get_lead(sprint)['auditLog']]
        sprints.flag_builder(sprint, 'bob', now=T0)
        ids = [e['id'] for e in get_lead(sprint)['auditLog']]
        assert ids[:2] == first_ids
        assert len(ids) == 3


# ── Stall detection ──────────────────────────────────────────────────────────

class TestStallDetection:
    """detect_stalled() — 72h idle, incomplete, not recently nudged."""

    @pytest.fixture(autouse=True)
    def _joined(self, sprint):
        sprints.join_sprint(sprint, 'alice', now=T0)
        sprints.join_sprint(sprint, 'bob', now=T0)

    def test_fresh_builders_not_stalled(self):
        assert sprints.detect_stalled(now=T0 + timedelta(hours=71)) == []

    def test_idle_builders_stalled_after_threshold(self, sprint):
        stalled = sprints.detect_stalled(now=T0 + timedelta(hours=72))
        assert {s['userId'] for s in stalled} == {'alice', 'bob'}
        assert stalled[0]['leadId'] == sprint
        assert stalled[0]['email'].endswith('@alumni.bridge.it')

    def test_recent_checkpoint_resets_clock(self, sprint):
        sprints.submit_checkpoint(sprint, 'alice', 1, 'https://github.com/a/1', now=T0 + timedelta(hours=50))
        stalled = sprints.detect_stalled(now=T0 + timedelta(hours=80))
        assert [s['userId'] for s in stalled] == ['bob']

    def test_recent_nudge_suppresses(self, sprint):
        sprints.nudge_builder(sprint, 'bob', now=T0 + timedelta(hours=75))
        stalled = sprints.detect_stalled(now=T0 + timedelta(hours=80))
        assert [s['userId'] for s in stalled] == ['alice']

    def test_completed_builder_not_stalled(self, sprint):
        _complete(sprint, 'alice', T0 + timedelta(hours=1))
        stalled = sprints.detect_stalled(now=T0 + timedelta(days=10))
        assert [s['userId'] for s in stalled] == ['bob']

    def test_detection_does_not_mutate(self, sprint):
        before = get_lead(sprint)
        sprints.detect_stalled(now=T0 + timedelta(days=5))
        assert get_lead(sprint) == before
