"""
Runtime configuration built from ``scoring_config`` rows.

Rows are ``(config_type, key, value)``. They are loaded once per operation
or batch run and turned into frozen value objects, so scoring, transition
and queue logic never read the config store directly and tests can pass
synthetic configs.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from network_engine.config import settings
from network_engine.domain.types import INTERACTION_TYPES, SENIORITY_LEVELS
from network_engine.errors import ConfigurationError
from network_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CONFIG_TYPES = (
    "relationship_weight",
    "priority_weight",
    "timing_trigger",
    "status_threshold",
    "general",
    "queue",
    "rate_limit",
)

DEFAULT_SENIORITY_MULTIPLIERS = {
    "c_suite": 1.5,
    "vp": 1.5,
    "director": 1.2,
    "manager": 1.0,
    "ic": 0.8,
}


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class RelationshipScoringConfig:
    # Overrides the ledger's points_value per interaction type when present
    points_by_type: Mapping[str, float] = field(default_factory=lambda: _frozen({}))
    decay_model: str = "exponential"
    half_life_days: float = 90.0
    lookback_days: int | None = None
    max_expected_points: float = 150.0
    reciprocity_threshold_pct: float = 30.0
    reciprocity_multiplier_min: float = 1.3
    reciprocity_multiplier_max: float = 1.5


@dataclass(frozen=True, slots=True)
class PriorityScoringConfig:
    relevance_weight: float = 0.5
    accessibility_weight: float = 0.3
    timing_weight: float = 0.2
    seniority_multipliers: Mapping[str, float] = field(
        default_factory=lambda: _frozen(DEFAULT_SENIORITY_MULTIPLIERS)
    )
    timing_triggers: Mapping[str, float] = field(default_factory=lambda: _frozen({}))


@dataclass(frozen=True, slots=True)
class TransitionThresholds:
    connected_to_engaged_score: float = 30.0
    connected_to_engaged_interactions: int = 2
    engaged_to_relationship_score: float = 60.0
    engaged_to_relationship_reciprocal: int = 1
    demotion_window_days: int = 30
    going_cold_window_days: int = 30
    going_cold_drop: float = 15.0


@dataclass(frozen=True, slots=True)
class QueueConfig:
    safety_cap: int = field(default_factory=lambda: settings.QUEUE_SAFETY_CAP)
    follow_up_stale_days: int = 14
    follow_up_min_score: int = 0
    follow_up_max_score: int = 75
    new_connection_follow_up_days: int = 7
    max_follow_ups: int = 10
    max_re_engagements: int = 10
    message_max_length: int = 300


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    daily_limit: int = field(default_factory=lambda: settings.LINKEDIN_DAILY_LIMIT)
    weekly_limit: int = field(default_factory=lambda: settings.LINKEDIN_WEEKLY_LIMIT)
    min_gap_seconds: int = field(default_factory=lambda: settings.LINKEDIN_REQUEST_GAP_MIN)
    max_gap_seconds: int = field(default_factory=lambda: settings.LINKEDIN_REQUEST_GAP_MAX)
    cooldown_days: int = field(default_factory=lambda: settings.COOLDOWN_DAYS)
    window_mode: str = field(default_factory=lambda: settings.RATE_LIMIT_WINDOW_MODE)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    relationship: RelationshipScoringConfig = field(default_factory=RelationshipScoringConfig)
    priority: PriorityScoringConfig = field(default_factory=PriorityScoringConfig)
    thresholds: TransitionThresholds = field(default_factory=TransitionThresholds)
    queue: QueueConfig = field(default_factory=QueueConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "EngineConfig":
        """Build and validate a config from ``scoring_config`` rows."""
        grouped: dict[str, dict[str, Any]] = {config_type: {} for config_type in CONFIG_TYPES}
        for row in rows:
            config_type = row["config_type"]
            if config_type not in grouped:
                raise ConfigurationError(f"Unknown config_type '{config_type}'", row=dict(row))
            grouped[config_type][row["key"]] = row["value"]

        config = cls(
            relationship=_relationship_config(grouped["relationship_weight"], grouped["general"]),
            priority=_priority_config(
                grouped["priority_weight"], grouped["general"], grouped["timing_trigger"]
            ),
            thresholds=_apply(TransitionThresholds(), grouped["status_threshold"], "status_threshold"),
            queue=_apply(QueueConfig(), grouped["queue"], "queue"),
            rate_limit=_apply(RateLimitConfig(), grouped["rate_limit"], "rate_limit"),
        )
        config.validate()
        return config

    def validate(self) -> None:
        weights = self.priority
        total = weights.relevance_weight + weights.accessibility_weight + weights.timing_weight
        if abs(total - 1.0) > 0.001:
            raise ConfigurationError(f"Priority weights must sum to 1, got {total:.3f}")

        relationship = self.relationship
        if relationship.decay_model not in ("exponential", "linear"):
            raise ConfigurationError(f"Unknown decay model '{relationship.decay_model}'")
        if relationship.half_life_days <= 0:
            raise ConfigurationError("recency_half_life_days must be positive")
        if relationship.max_expected_points <= 0:
            raise ConfigurationError("max_expected_points must be positive")
        if relationship.reciprocity_multiplier_max < relationship.reciprocity_multiplier_min:
            raise ConfigurationError("reciprocity multiplier max is below min")

        limits = self.rate_limit
        if limits.daily_limit < 0 or limits.weekly_limit < 0:
            raise ConfigurationError("Rate limits must be non-negative")
        if limits.min_gap_seconds > limits.max_gap_seconds:
            raise ConfigurationError("min_gap_seconds exceeds max_gap_seconds")
        if limits.window_mode not in ("calendar", "rolling"):
            raise ConfigurationError(f"Unknown rate limit window mode '{limits.window_mode}'")

        if self.queue.follow_up_min_score > self.queue.follow_up_max_score:
            raise ConfigurationError("follow-up score band is empty")


def _number(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Config value for '{key}' is not numeric: {value!r}") from e


def _relationship_config(weights: dict[str, Any], general: dict[str, Any]) -> RelationshipScoringConfig:
    points = {}
    for key, value in weights.items():
        if key not in INTERACTION_TYPES:
            logger.warning("Ignoring relationship weight for unknown interaction type", key=key)
            continue
        points[key] = _number(value, key)

    config = RelationshipScoringConfig(points_by_type=_frozen(points))
    overrides: dict[str, Any] = {}
    if "recency_half_life_days" in general:
        overrides["half_life_days"] = _number(general["recency_half_life_days"], "recency_half_life_days")
    if "decay_model" in general:
        overrides["decay_model"] = str(general["decay_model"])
    if general.get("lookback_days") is not None:
        overrides["lookback_days"] = int(_number(general["lookback_days"], "lookback_days"))
    for key in (
        "max_expected_points",
        "reciprocity_threshold_pct",
        "reciprocity_multiplier_min",
        "reciprocity_multiplier_max",
    ):
        if key in general:
            overrides[key] = _number(general[key], key)
    return replace(config, **overrides)


def _priority_config(
    weights: dict[str, Any], general: dict[str, Any], timing: dict[str, Any]
) -> PriorityScoringConfig:
    multipliers = dict(DEFAULT_SENIORITY_MULTIPLIERS)
    for level in SENIORITY_LEVELS:
        key = f"seniority_multiplier_{level}"
        if key in general:
            multipliers[level] = _number(general[key], key)

    overrides: dict[str, Any] = {
        "seniority_multipliers": _frozen(multipliers),
        "timing_triggers": _frozen({key: _number(value, key) for key, value in timing.items()}),
    }
    for key in ("relevance", "accessibility", "timing"):
        if key in weights:
            overrides[f"{key}_weight"] = _number(weights[key], key)
    return replace(PriorityScoringConfig(), **overrides)


def _apply(base, values: dict[str, Any], config_type: str):
    """Override dataclass fields of ``base`` from rows, coercing to the field's type."""
    overrides: dict[str, Any] = {}
    for key, value in values.items():
        if not hasattr(base, key):
            logger.warning("Ignoring unknown config key", config_type=config_type, key=key)
            continue
        current = getattr(base, key)
        if isinstance(current, str):
            overrides[key] = str(value)
        elif isinstance(current, int):
            overrides[key] = int(_number(value, key))
        else:
            overrides[key] = _number(value, key)
    return replace(base, **overrides)
