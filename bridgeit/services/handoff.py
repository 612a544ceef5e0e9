"""
Handoff brief — Markdown summary of a lead for the builder who takes it on.

The brief is rendered from the recency-weighted lead dict and optionally
archived to R2 so the scout dashboard can link to a stable copy.
"""
import logging
import re
from datetime import datetime
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from bridgeit.config import R2_BUCKET_NAME, R2_PUBLIC_URL
from bridgeit.services.leads import utcnow, parse_timestamp

logger = logging.getLogger('services.handoff')

# Manual vs. digital time-on-task by primary friction category
EFFICIENCY_BENCHMARKS = {
    'intake': {
        'manual': '15-20 min per order',
        'digital': '2-3 min per order',
        'benchmark': 'Industry Benchmarks: 80-90% time reduction',
    },
    'booking': {
        'manual': '5-8 min per reservation',
        'digital': '30-60 sec per reservation',
        'benchmark': 'Industry Benchmarks: 85-90% time reduction',
    },
    'logistics': {
        'manual': '10-15 min per order coordination',
        'digital': '2-4 min per order coordination',
        'benchmark': 'Industry Benchmarks: 75-85% time reduction',
    },
}


def _clusters(lead: Dict):
    return [c for c in (lead.get('friction_clusters') or []) if isinstance(c, dict)]


def staff_pitch_hook(lead: Dict) -> str:
    recency = lead.get('recency_data') or {}
    recent = recency.get('0_30_days') or 0
    supporting = recency.get('31_90_days') or 0
    clusters = _clusters(lead)
    quotes = (clusters[0].get('sample_quotes') or []) if clusters else []
    top_quote = quotes[0] if quotes else ''

    return (
        "**Staff Pitch Hook**\n\n"
        f"{lead['business_name']} is experiencing a {recent}% spike in "
        f"{(lead.get('friction_type') or 'operational').lower()} complaints in the last 30 days, "
        f"with {supporting} supporting issues from the previous 60 days. This represents a clear "
        "technical friction point that our alumni network can address.\n\n"
        "**Key Customer Voice:**\n"
        f"\"{top_quote}\"\n\n"
        f"**Impact:** {lead.get('time_on_task_estimate') or 'Not estimated'}"
    )


def efficiency_table(lead: Dict) -> str:
    clusters = _clusters(lead)
    category = (clusters[0].get('category') if clusters else None) or 'intake'
    metrics = EFFICIENCY_BENCHMARKS.get(category, EFFICIENCY_BENCHMARKS['intake'])

    return (
        "**Efficiency Table (Time-on-Task Metrics)**\n\n"
        "| Process Type | Time-on-Task | Industry Benchmarks |\n"
        "|--------------|--------------|---------------------|\n"
        f"| Manual Process | {metrics['manual']} | {metrics['benchmark']} |\n"
        f"| Digital Solution | {metrics['digital']} | {metrics['benchmark']} |\n"
        f"| Efficiency Gain | 75-90% reduction | Standard for {category} automation |"
    )


def render_markdown_brief(lead: Dict, now: datetime = None) -> str:
    now = now or utcnow()
    clusters = _clusters(lead)

    friction_details = '\n'.join(
        f"**{str(c.get('category', '')).upper()}** "
        f"({c.get('recent_count', 0)} recent, {c.get('count', 0)} total)"
        for c in clusters
    )
    quotes = '\n'.join(
        f'- "{quote}"'
        for c in clusters
        for quote in (c.get('sample_quotes') or [])
    )
    discovered = parse_timestamp(lead.get('discovered_at'))

    sections = [
        f"# Handoff Brief: {lead['business_name']}",
        f"## HFI Score: {lead.get('hfi_score')}/100",
        f"**Friction Type:** {lead.get('friction_type') or ''}\n"
        f"**Status:** {lead.get('status') or ''}\n"
        f"**Discovered:** {discovered.date().isoformat() if discovered else 'unknown'}",
        "---",
        staff_pitch_hook(lead),
        "---",
        efficiency_table(lead),
        "---",
        f"## Friction Details\n\n{friction_details}",
        f"## Customer Quotes\n\n{quotes}",
        "---",
        f"*Generated by Bridge.it Handoff Engine*\n*Date: {now.isoformat()}Z*",
    ]
    return '\n\n'.join(sections)


def brief_filename(lead: Dict, now: datetime = None) -> str:
    now = now or utcnow()
    name = re.sub(r'\s+', '_', lead['business_name'])
    return f"{name}_handoff_{now.date().isoformat()}"


def archive_brief(lead_id: str, filename: str, markdown: str) -> Optional[str]:
    """Upload the brief to R2. Returns the public URL, or None when R2 is unavailable."""
    from bridgeit.extensions import r2_client

    if not r2_client:
        return None

    key = f"handoff-briefs/{lead_id}/{filename}.md"
    try:
        r2_client.put_object(
            Bucket=R2_BUCKET_NAME, Key=key,
            Body=markdown.encode('utf-8'),
            ContentType='text/markdown',
        )
    except (BotoCoreError, ClientError) as e:
        logger.error("Error archiving handoff brief %s: %s", key, e)
        return None

    logger.info("Handoff brief archived to R2: %s", key)
    return f"{R2_PUBLIC_URL}/{key}"


def generate_handoff(lead: Dict, now: datetime = None) -> Dict:
    """Render, name and archive a brief for a serialized lead."""
    now = now or utcnow()
    markdown = render_markdown_brief(lead, now)
    filename = brief_filename(lead, now)
    url = archive_brief(lead['id'], filename, markdown)
    return {'markdown': markdown, 'filename': filename, 'url': url}
