"""
Automated lifecycle rules. Pure functions over already-loaded facts.
"""

from network_engine.domain.models import ScoreSnapshot
from network_engine.features.scoring.config import TransitionThresholds


def promotion_target(
    status: str,
    score: float,
    interaction_count: int,
    reciprocal_count: int,
    thresholds: TransitionThresholds,
) -> tuple[str, str] | None:
    """Return ``(new_status, reason)`` when sustained engagement earns a promotion."""
    if (
        status == "connected"
        and score >= thresholds.connected_to_engaged_score
        and interaction_count >= thresholds.connected_to_engaged_interactions
    ):
        return (
            "engaged",
            f"Score {score:g} with {interaction_count} interactions",
        )

    if (
        status == "engaged"
        and score >= thresholds.engaged_to_relationship_score
        and reciprocal_count >= thresholds.engaged_to_relationship_reciprocal
    ):
        return (
            "relationship",
            f"Score {score:g} with {reciprocal_count} reciprocal interactions",
        )

    return None


def demotion_target(
    status: str,
    score: float,
    best_recent_snapshot: float | None,
    thresholds: TransitionThresholds,
) -> tuple[str, str] | None:
    """
    Demote one step when the score sits below the status floor and no
    snapshot inside the demotion window reached it.
    """
    window = thresholds.demotion_window_days
    for current, floor, lower in (
        ("relationship", thresholds.engaged_to_relationship_score, "engaged"),
        ("engaged", thresholds.connected_to_engaged_score, "connected"),
    ):
        if status != current or score >= floor:
            continue
        if best_recent_snapshot is not None and best_recent_snapshot >= floor:
            return None
        return lower, f"Score below {floor:g} for {window} days"
    return None


def going_cold_drop(
    current_score: float, earliest_snapshot: ScoreSnapshot | None, thresholds: TransitionThresholds
) -> float | None:
    """Size of the score drop when it exceeds the going-cold threshold, else None."""
    if earliest_snapshot is None:
        return None
    drop = earliest_snapshot.score_value - current_score
    return drop if drop > thresholds.going_cold_drop else None
