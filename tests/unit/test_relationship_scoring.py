from datetime import UTC, datetime, timedelta

import pytest

from network_engine.domain.models import Interaction
from network_engine.domain.types import INTERACTION_POINTS
from network_engine.errors import NotFoundError
from network_engine.features.scoring.config import RelationshipScoringConfig
from network_engine.features.scoring.relationship import (
    calculate_relationship_score,
    decay_factor,
    reciprocity_multiplier,
    round_half_up,
)

AS_OF = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _interaction(interaction_type: str, days_ago: float = 0, points: int | None = None):
    return Interaction(
        id=f"i-{interaction_type}-{days_ago}",
        contact_id="c-1",
        type=interaction_type,
        source="manual",
        occurred_at=AS_OF - timedelta(days=days_ago),
        points_value=INTERACTION_POINTS[interaction_type] if points is None else points,
    )


def test_no_interactions_scores_zero():
    assert calculate_relationship_score([], RelationshipScoringConfig(), AS_OF) == 0


def test_fresh_interaction_normalized_against_expected_points():
    score = calculate_relationship_score(
        [_interaction("meeting_1on1_inperson")], RelationshipScoringConfig(), AS_OF
    )
    # 10 / 150 * 100 = 6.67
    assert score == 7


def test_exponential_decay_halves_at_half_life():
    config = RelationshipScoringConfig()
    assert decay_factor(0, config) == 1.0
    assert decay_factor(90, config) == pytest.approx(0.5)
    assert decay_factor(180, config) == pytest.approx(0.25)

    score = calculate_relationship_score([_interaction("meeting_1on1_inperson", 90)], config, AS_OF)
    # 5 / 150 * 100 = 3.33
    assert score == 3


def test_linear_decay_reaches_zero_at_twice_half_life():
    config = RelationshipScoringConfig(decay_model="linear")
    assert decay_factor(90, config) == pytest.approx(0.5)
    assert decay_factor(180, config) == 0.0
    assert decay_factor(400, config) == 0.0


def test_score_is_clamped_to_100():
    interactions = [_interaction("meeting_1on1_inperson") for _ in range(40)]
    assert calculate_relationship_score(interactions, RelationshipScoringConfig(), AS_OF) == 100


def test_points_by_type_overrides_ledger_points():
    config = RelationshipScoringConfig(points_by_type={"email": 30})
    assert calculate_relationship_score([_interaction("email")], config, AS_OF) == 20


def test_lookback_window_excludes_old_interactions():
    config = RelationshipScoringConfig(lookback_days=30)
    assert calculate_relationship_score([_interaction("email", 40)], config, AS_OF) == 0


def test_reciprocity_multiplier_scales_with_reciprocal_share():
    config = RelationshipScoringConfig()
    one_sided = [_interaction("email"), _interaction("email"), _interaction("email"),
                 _interaction("email"), _interaction("linkedin_dm_received")]
    assert reciprocity_multiplier(one_sided, config) == 1.0

    half = [_interaction("email"), _interaction("linkedin_dm_received")]
    assert reciprocity_multiplier(half, config) == pytest.approx(1.3 + (20 / 70) * 0.2)

    all_reciprocal = [_interaction("linkedin_dm_received"), _interaction("introduction_received")]
    assert reciprocity_multiplier(all_reciprocal, config) == pytest.approx(1.5)


def test_round_half_up_rounds_away_from_even():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(7.745, 1) == 7.7
    assert round_half_up(0.125, 2) == 0.13


@pytest.mark.asyncio
async def test_recalculate_for_contact_persists_score(engine):
    contact = engine.contacts.add(first_name="Ada", status="connected", relationship_score=50)
    await engine.interactions.insert(
        contact.id, "meeting_1on1_inperson", "manual", datetime.now(UTC), 10
    )

    score = await engine.scoring.recalculate_for_contact(contact.id)

    assert score == 7
    assert engine.contacts.rows[contact.id].relationship_score == 7


@pytest.mark.asyncio
async def test_recalculate_for_deleted_contact(engine):
    contact = engine.contacts.add(first_name="Ada", deleted_at=AS_OF)

    with pytest.raises(NotFoundError):
        await engine.scoring.recalculate_for_contact(contact.id)
