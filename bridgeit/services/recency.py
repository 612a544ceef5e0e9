"""
Recency weighting — derives weighted_issues and recency_score from complaint buckets.

Applied to every lead on every read path. Never persisted.
"""
import math
from typing import Dict, Any

RECENCY_WEIGHTS = {
    '0_30_days': 1.0,
    '31_90_days': 0.5,
    '90_plus_days': 0.0,
}


def _bucket(recency_data, key) -> float:
    try:
        value = float(recency_data.get(key) or 0)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) and value > 0 else 0.0


def compute_recency(recency_data) -> Dict[str, float]:
    """Return {'weighted_issues', 'recency_score'}; zeros for missing or malformed input."""
    if not isinstance(recency_data, dict):
        return {'weighted_issues': 0.0, 'recency_score': 0.0}

    recent = _bucket(recency_data, '0_30_days')
    supporting = _bucket(recency_data, '31_90_days')
    historical = _bucket(recency_data, '90_plus_days')

    weighted = (
        recent * RECENCY_WEIGHTS['0_30_days']
        + supporting * RECENCY_WEIGHTS['31_90_days']
        + historical * RECENCY_WEIGHTS['90_plus_days']
    )
    total = recent + supporting + historical
    score = recent / total if total > 0 else 0.0

    return {'weighted_issues': weighted, 'recency_score': score}


def apply_recency_weights(lead: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the lead dict with the derived recency fields added."""
    return {**lead, **compute_recency(lead.get('recency_data'))}
