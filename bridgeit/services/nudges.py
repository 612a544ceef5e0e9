"""
Stall sweep — find stalled builders, e-mail them, then record the nudge.

Sends happen between transactions: detection reads and commits, each e-mail
goes out with no lock held, and only a successful send is recorded on the lead.
"""
import logging
from datetime import datetime
from typing import Dict

from bridgeit.errors import SprintError
from bridgeit.services.leads import utcnow
from bridgeit.services.notifications import send_nudge_email
from bridgeit.services.sprints import detect_stalled, nudge_builder

logger = logging.getLogger('services.nudges')


def sweep_stalled(actor: str = 'System', now: datetime = None) -> Dict:
    now = now or utcnow()
    stalled = detect_stalled(now)

    results = []
    for entry in stalled:
        profile = {'id': entry['userId'], 'name': entry['name'], 'email': entry['email']}
        sent = send_nudge_email(profile, entry)
        recorded = False
        if sent:
            try:
                nudge_builder(entry['leadId'], entry['userId'], actor=actor, now=now)
                recorded = True
            except SprintError as e:
                # Builder left or sprint ended while the e-mail was in flight
                logger.warning("Nudge sent to %s but not recorded on %s: %s",
                               entry['userId'], entry['leadId'], e.message)
        results.append({**entry, 'sent': sent, 'recorded': recorded})

    nudged = sum(1 for r in results if r['recorded'])
    logger.info("Stall sweep: %d stalled, %d nudged", len(stalled), nudged)
    return {'stalled': len(stalled), 'nudged': nudged, 'results': results}
