"""
Notifications — nudge e-mails to builders and Slack posts for awarded sprints.

Every send goes through a circuit breaker with a bounded timeout. A failed send
is logged and reported as False; it never blocks or rolls back sprint state.
"""
import logging
import requests

from bridgeit.config import (
    SLACK_WEBHOOK_URL, EMAIL_WEBHOOK_URL, EMAIL_FROM, NOTIFY_TIMEOUT_SECONDS,
)
from bridgeit.services.circuit_breaker import get_breaker, CircuitOpenError

logger = logging.getLogger('services.notifications')


def _post(breaker_name, url, payload):
    def send():
        response = requests.post(url, json=payload, timeout=NOTIFY_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response

    return get_breaker(breaker_name).call(send)


def build_nudge_email(profile, lead_summary):
    """Subject + body for a stalled-builder nudge."""
    name = profile.get('name') or 'there'
    business = lead_summary.get('businessName', 'your sprint')
    done = lead_summary.get('checkpointsCompleted', 0)
    total = lead_summary.get('totalMilestones', 4)
    hours = lead_summary.get('hoursSinceUpdate')

    lines = [
        f"Hi {name},",
        "",
        f"We haven't seen a checkpoint from you on the {business} sprint"
        + (f" in {int(hours)} hours." if hours is not None else " in a while."),
        f"You're at {done}/{total} milestones. Submit your next GitHub or Loom proof link to stay in the running.",
        "",
        "— The Bridge.it Scout Team",
    ]
    return {
        'subject': f"Checking in on {business}",
        'body': '\n'.join(lines),
    }


def send_nudge_email(profile, lead_summary) -> bool:
    """Dispatch a nudge to one builder. Returns True only when the provider accepted it."""
    email = profile.get('email')
    if not email:
        logger.warning("No e-mail on file for builder %s, nudge not sent", profile.get('id', '?'))
        return False
    if not EMAIL_WEBHOOK_URL:
        logger.info("EMAIL_WEBHOOK_URL not set, nudge for %s not sent", email)
        return False

    message = build_nudge_email(profile, lead_summary)
    payload = {'from': EMAIL_FROM, 'to': email, **message}
    try:
        _post('email', EMAIL_WEBHOOK_URL, payload)
    except CircuitOpenError as e:
        logger.warning("Nudge to %s skipped: %s", email, e)
        return False
    except requests.RequestException:
        logger.error("Failed to send nudge to %s", email, exc_info=True)
        return False

    logger.info("Nudge e-mail sent to %s for lead %s", email, lead_summary.get('leadId'))
    return True


def notify_winner_awarded(lead_summary) -> bool:
    """Post the award to Slack."""
    if not SLACK_WEBHOOK_URL:
        return False

    business = lead_summary.get('business_name') or lead_summary.get('businessName', '')
    winner = lead_summary.get('winnerUserId')
    fields = [
        {"type": "mrkdwn", "text": f"*Lead:* {lead_summary.get('id') or lead_summary.get('lead_id')}"},
        {"type": "mrkdwn", "text": f"*Winner:* {winner}"},
    ]
    if lead_summary.get('winnerAverageScore') is not None:
        fields.append({"type": "mrkdwn", "text": f"*Peer vote avg:* {lead_summary['winnerAverageScore']:.2f}"})
    for entry in lead_summary.get('scoreBreakdown') or []:
        if entry.get('userId') == winner:
            fields.append({"type": "mrkdwn", "text": f"*Total score:* {entry['totalScore']}"})

    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"Sprint Awarded — {business}"},
        },
        {"type": "section", "fields": fields},
    ]

    try:
        _post('slack', SLACK_WEBHOOK_URL, {"blocks": blocks})
    except CircuitOpenError as e:
        logger.warning("Award notification skipped: %s", e)
        return False
    except requests.RequestException:
        logger.error("Failed to send award notification for %s", business, exc_info=True)
        return False

    logger.info("Award notification sent for %s", business)
    return True
