"""
Relationship score: decayed, interaction-weighted warmth of a relationship.

Pure functions of ``(interactions, config, as_of)``; persistence lives in
the scoring service.
"""

import math
from collections.abc import Sequence
from datetime import datetime

from network_engine.domain.models import Interaction
from network_engine.domain.types import RECIPROCAL_TYPES

from .config import RelationshipScoringConfig

SECONDS_PER_DAY = 86_400
MAX_RELATIONSHIP_SCORE = 100


def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from zero instead of to the nearest even digit."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def days_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def decay_factor(days_since: float, config: RelationshipScoringConfig) -> float:
    """Weight in [0, 1] for an interaction ``days_since`` days old."""
    if days_since <= 0:
        return 1.0
    if config.decay_model == "linear":
        return max(0.0, 1.0 - days_since / (2 * config.half_life_days))
    return 0.5 ** (days_since / config.half_life_days)


def reciprocity_multiplier(
    interactions: Sequence[Interaction], config: RelationshipScoringConfig
) -> float:
    """
    Bonus for two-way relationships.

    Below the reciprocal-share threshold the multiplier is 1.0; above it the
    multiplier scales linearly from the configured min (at the threshold)
    to the max (at 100% reciprocal).
    """
    if not interactions:
        return 1.0

    reciprocal = sum(1 for interaction in interactions if interaction.type in RECIPROCAL_TYPES)
    reciprocal_pct = reciprocal / len(interactions) * 100
    if reciprocal_pct < config.reciprocity_threshold_pct:
        return 1.0

    span = 100 - config.reciprocity_threshold_pct
    if span <= 0:
        return config.reciprocity_multiplier_max
    progress = (reciprocal_pct - config.reciprocity_threshold_pct) / span
    spread = config.reciprocity_multiplier_max - config.reciprocity_multiplier_min
    return config.reciprocity_multiplier_min + progress * spread


def interaction_points(interaction: Interaction, config: RelationshipScoringConfig) -> float:
    return config.points_by_type.get(interaction.type, interaction.points_value)


def calculate_relationship_score(
    interactions: Sequence[Interaction],
    config: RelationshipScoringConfig,
    as_of: datetime,
) -> int:
    """
    Compute the 0-100 relationship score as of ``as_of``.

    Interactions outside the optional lookback window contribute nothing.
    """
    window = [
        interaction
        for interaction in interactions
        if config.lookback_days is None
        or days_between(interaction.occurred_at, as_of) <= config.lookback_days
    ]
    if not window:
        return 0

    raw = sum(
        interaction_points(interaction, config)
        * decay_factor(days_between(interaction.occurred_at, as_of), config)
        for interaction in window
    )
    raw *= reciprocity_multiplier(window, config)

    normalized = int(round_half_up(raw / config.max_expected_points * 100))
    return max(0, min(normalized, MAX_RELATIONSHIP_SCORE))
