"""
Winner scoring — pace / quality / scout-review weighting and winner selection.

Weights and pace constants come from scoring_config.yaml with a hardcoded
fallback. Both the scout-review path and the voting path pick their winner
through pick_highest(), so ties always resolve to the first candidate.
"""
import os
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Callable, TypeVar

import yaml

logger = logging.getLogger('services.scoring')

T = TypeVar('T')


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'weights': {
            'pace': 0.30,
            'quality': 0.50,
            'scout_review': 0.20,
        },
        'pace': {
            'max_score': 100,
            'decay_per_hour': 2,
            'floor': 4,
            'hours_per_checkpoint': 24,
        },
    }


def load_scoring_config():
    """Load scoring config from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.path.join(os.path.dirname(__file__), 'scoring_config.yaml')
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        defaults = _default_config()
        _scoring_config = {
            'version': loaded.get('version', '?'),
            'weights': {**defaults['weights'], **(loaded.get('weights') or {})},
            'pace': {**defaults['pace'], **(loaded.get('pace') or {})},
        }
        logger.info("Scoring config loaded from YAML (version=%s)", _scoring_config['version'])
    except (OSError, yaml.YAMLError, AttributeError) as e:
        logger.warning("Scoring YAML unavailable (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


# ── Per-finalist scores ──────────────────────────────────────────────────────

@dataclass
class FinalistScore:
    user_id: str
    pace_score: float
    quality_score: float
    scout_review_score: float
    total_score: float
    hours_difference: float

    def to_dict(self) -> Dict:
        d = asdict(self)
        return {
            'userId': d['user_id'],
            'paceScore': round(d['pace_score'], 2),
            'qualityScore': d['quality_score'],
            'scoutReviewScore': d['scout_review_score'],
            'totalScore': round(d['total_score'], 2),
            'hoursDifference': round(d['hours_difference'], 2),
        }


def inferred_completion_time(joined_at: datetime, checkpoints_completed: int, config=None) -> datetime:
    """Heuristic completion time: joined_at plus one day per completed checkpoint."""
    cfg = (config or load_scoring_config())['pace']
    return joined_at + timedelta(hours=checkpoints_completed * cfg['hours_per_checkpoint'])


def calculate_pace_score(hours_difference: float, config=None) -> float:
    """max(floor, max_score - decay * |hours|)."""
    cfg = (config or load_scoring_config())['pace']
    return max(cfg['floor'], cfg['max_score'] - cfg['decay_per_hour'] * abs(hours_difference))


def calculate_total_score(pace: float, quality: float, scout_review: float, config=None) -> float:
    w = (config or load_scoring_config())['weights']
    return pace * w['pace'] + quality * w['quality'] + scout_review * w['scout_review']


def score_finalist(user_id: str, joined_at: datetime, checkpoints_completed: int,
                   first_completion_at: datetime, quality_score: Optional[float],
                   scout_review_score: Optional[float], config=None) -> FinalistScore:
    """Score one finalist against the first-completion reference time."""
    config = config or load_scoring_config()
    completion = inferred_completion_time(joined_at, checkpoints_completed, config)
    hours_difference = (completion - first_completion_at).total_seconds() / 3600

    pace = calculate_pace_score(hours_difference, config)
    quality = float(quality_score or 0)
    review = float(scout_review_score) if scout_review_score is not None else quality
    total = calculate_total_score(pace, quality, review, config)

    return FinalistScore(
        user_id=user_id,
        pace_score=pace,
        quality_score=quality,
        scout_review_score=review,
        total_score=total,
        hours_difference=hours_difference,
    )


def pick_highest(candidates: List[T], key: Callable[[T], float]) -> Optional[T]:
    """Strictly-highest candidate; on a tie the earliest in the list wins."""
    best = None
    best_value = None
    for candidate in candidates:
        value = key(candidate)
        if best is None or value > best_value:
            best, best_value = candidate, value
    return best
