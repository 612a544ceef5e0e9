"""Tests for the sprint routes — request parsing and error → status mapping."""
from datetime import timedelta

import pytest
from unittest.mock import patch

from bridgeit.services import sprints
from bridgeit.services.leads import utcnow

# Routes run on the wall clock, so scenarios are staged a month in the past
T0 = (utcnow() - timedelta(days=30)).replace(microsecond=0)
DONE = T0 + timedelta(days=4)


@pytest.fixture
def lead_id(make_lead, make_alumni):
    make_alumni('alice')
    make_alumni('bob')
    return make_lead()


@pytest.fixture
def launched(client, lead_id):
    client.post(f'/api/leads/{lead_id}/launch-sprint', json={'maxSlots': 2, 'sprintDuration': 2})
    return lead_id


class TestLaunchRoute:

    def test_launch(self, client, lead_id):
        resp = client.post(f'/api/leads/{lead_id}/launch-sprint', json={'maxSlots': 3, 'sprintDuration': 4})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['sprintActive'] is True
        assert body['maxSlots'] == 3
        assert body['status'] == 'matched'

    @pytest.mark.parametrize('payload', [
        {'maxSlots': 5, 'sprintDuration': 2},
        {'maxSlots': 2, 'sprintDuration': 1},
        {'maxSlots': '2', 'sprintDuration': 2},
        {},
    ])
    def test_invalid_parameters_are_400(self, client, lead_id, payload):
        resp = client.post(f'/api/leads/{lead_id}/launch-sprint', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()['kind'] == 'validation'

    def test_unknown_lead_is_404(self, client):
        resp = client.post('/api/leads/nope/launch-sprint', json={'maxSlots': 2, 'sprintDuration': 2})
        assert resp.status_code == 404
        assert resp.get_json() == {
            'error': 'Lead nope not found', 'kind': 'not_found', 'code': 'lead_not_found',
        }

    def test_relaunch_is_409(self, client, launched):
        resp = client.post(f'/api/leads/{launched}/launch-sprint', json={'maxSlots': 2, 'sprintDuration': 2})
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'sprint_already_active'


class TestJoinRoute:

    def test_join(self, client, launched):
        resp = client.post(f'/api/leads/{launched}/join-sprint', json={
            'userId': 'alice', 'selectedDeliverables': ['full_project'], 'userName': 'Alice',
        })
        assert resp.status_code == 200
        builders = resp.get_json()['activeBuilders']
        assert [b['userId'] for b in builders] == ['alice']

    def test_capacity_is_409(self, client, launched, make_alumni):
        make_alumni('carol')
        for user in ('alice', 'bob'):
            client.post(f'/api/leads/{launched}/join-sprint', json={'userId': user})
        resp = client.post(f'/api/leads/{launched}/join-sprint', json={'userId': 'carol'})
        assert resp.status_code == 409
        assert resp.get_json() == {
            'error': resp.get_json()['error'], 'kind': 'capacity_exceeded', 'code': 'slots_full',
        }

    def test_missing_user_is_400(self, client, launched):
        assert client.post(f'/api/leads/{launched}/join-sprint', json={}).status_code == 400


class TestCheckpointRoutes:

    def test_submit_then_verify(self, client, launched):
        client.post(f'/api/leads/{launched}/join-sprint', json={'userId': 'alice'})
        resp = client.post(f'/api/leads/{launched}/submit-checkpoint', json={
            'userId': 'alice', 'milestoneId': 1, 'proofLink': 'https://github.com/alice/pizza',
        })
        assert resp.status_code == 200
        status = resp.get_json()['activeBuilders'][0]['checkpointStatuses']['1']
        assert status['status'] == 'submitted'

        resp = client.post(f'/api/leads/{launched}/verify-checkpoint', json={
            'userId': 'alice', 'milestoneId': 1, 'approved': True, 'scoutName': 'Dana',
        })
        builder = resp.get_json()['activeBuilders'][0]
        assert builder['checkpointsCompleted'] == 1
        assert builder['checkpointStatuses']['1']['reviewedBy'] == 'Dana'

    def test_bad_proof_link_is_400(self, client, launched):
        client.post(f'/api/leads/{launched}/join-sprint', json={'userId': 'alice'})
        resp = client.post(f'/api/leads/{launched}/submit-checkpoint', json={
            'userId': 'alice', 'milestoneId': 1, 'proofLink': 'https://example.com/demo',
        })
        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'invalid_proof_link'


class TestWinnerRoutes:

    @pytest.fixture
    def reviewed(self, lead_id):
        sprints.launch_sprint(lead_id, 2, 2, now=T0)
        for user in ('alice', 'bob'):
            sprints.join_sprint(lead_id, user, now=T0)
            for m in range(1, 5):
                sprints.submit_checkpoint(lead_id, user, m, f'https://github.com/{user}/{m}', now=DONE)
                sprints.verify_checkpoint(lead_id, user, m, True, now=DONE)
        sprints.submit_scout_review(lead_id, 'alice', 90, 80, now=DONE)
        return lead_id

    def test_calculate_before_reviews_is_412(self, client, reviewed):
        resp = client.post(f'/api/leads/{reviewed}/calculate-winner')
        assert resp.status_code == 412
        assert resp.get_json()['code'] == 'reviews_pending'

    def test_final_review_awards_and_notifies(self, client, reviewed):
        with patch('bridgeit.routes.sprints.notify_winner_awarded') as notify:
            resp = client.post(f'/api/leads/{reviewed}/scout-review', json={
                'userId': 'bob', 'qualityScore': 70, 'scoutReviewScore': 90,
            })
        body = resp.get_json()
        assert resp.status_code == 200
        assert body['winnerUserId'] == 'alice'
        assert body['status'] == 'awarded'
        notify.assert_called_once()

    def test_calculate_after_award_is_409(self, client, reviewed):
        with patch('bridgeit.routes.sprints.notify_winner_awarded'):
            client.post(f'/api/leads/{reviewed}/scout-review', json={'userId': 'bob', 'qualityScore': 70})
        resp = client.post(f'/api/leads/{reviewed}/calculate-winner')
        assert resp.status_code == 409
        assert resp.get_json()['code'] == 'winner_decided'


class TestInterventionRoutes:

    @pytest.fixture
    def joined(self, client, launched):
        client.post(f'/api/leads/{launched}/join-sprint', json={'userId': 'alice'})
        return launched

    def test_pause_and_resume(self, client, joined):
        body = client.patch(f'/api/leads/{joined}/pause-sprint', json={'isPaused': True}).get_json()
        assert body['isPaused'] is True
        body = client.patch(f'/api/leads/{joined}/pause-sprint', json={'isPaused': False}).get_json()
        assert body['isPaused'] is False
        assert [e['action'] for e in body['auditLog']][-2:] == ['pause', 'resume']

    def test_pause_needs_boolean(self, client, joined):
        assert client.patch(f'/api/leads/{joined}/pause-sprint', json={'isPaused': 'yes'}).status_code == 400

    def test_extend(self, client, joined):
        before = client.get(f'/api/leads/{joined}').get_json()['sprintDeadline']
        after = client.patch(f'/api/leads/{joined}/extend-deadline', json={'days': 7}).get_json()['sprintDeadline']
        assert after > before
        assert client.patch(f'/api/leads/{joined}/extend-deadline', json={'days': 31}).status_code == 400

    def test_evict(self, client, joined):
        resp = client.delete(f'/api/leads/{joined}/evict-builder/alice', json={'reason': 'No activity'})
        body = resp.get_json()
        assert body['activeBuilders'] == []
        assert body['auditLog'][-1]['reason'] == 'No activity'
        assert client.delete(f'/api/leads/{joined}/evict-builder/alice').status_code == 404

    def test_terminate_then_interventions_refused(self, client, joined):
        body = client.post(f'/api/leads/{joined}/terminate-sprint', json={'reason': 'Owner withdrew'}).get_json()
        assert body['sprintActive'] is False
        resp = client.post(f'/api/leads/{joined}/nudge-builder/alice')
        assert resp.status_code == 409

    def test_nudge_and_flag(self, client, joined):
        body = client.post(f'/api/leads/{joined}/nudge-builder/alice').get_json()
        assert body['activeBuilders'][0]['last_nudged_at'] is not None
        body = client.post(f'/api/leads/{joined}/flag-builder/alice').get_json()
        builder = body['activeBuilders'][0]
        assert builder['flagged_at'] is not None
        assert builder['flagged_expires_at'] > builder['flagged_at']


class TestStalledRoutes:

    def test_list_stalled(self, client, lead_id):
        sprints.launch_sprint(lead_id, 2, 2, now=T0)
        sprints.join_sprint(lead_id, 'alice', now=T0)
        body = client.get('/api/sprints/stalled').get_json()
        assert body['count'] == 1
        assert body['stalled'][0]['userId'] == 'alice'

    def test_sweep(self, client, lead_id):
        sprints.launch_sprint(lead_id, 2, 2, now=T0)
        sprints.join_sprint(lead_id, 'alice', now=T0)
        with patch('bridgeit.services.nudges.send_nudge_email', return_value=True):
            body = client.post('/api/sprints/stalled/nudge', json={'scoutName': 'Dana'}).get_json()
        assert body['nudged'] == 1
        detail = client.get(f'/api/leads/{lead_id}').get_json()
        assert detail['auditLog'][-1]['actor'] == 'Dana'
