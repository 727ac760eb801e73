"""
Priority score for not-yet-connected targets.

total = relevance * w_r + accessibility * w_a + timing * w_t, each sub-score
in [0, 10].
"""

from dataclasses import dataclass

from network_engine.domain.models import Contact

from .config import PriorityScoringConfig
from .relationship import round_half_up

MAX_SUB_SCORE = 10.0
DEFAULT_CATEGORY_WEIGHT = 1
RELEVANCE_DIVISOR = 15


@dataclass(slots=True)
class PriorityBreakdown:
    relevance: float
    accessibility: float
    timing: float
    total: float


def relevance_score(contact: Contact, config: PriorityScoringConfig) -> float:
    max_weight = max(
        (category.relevance_weight for category in contact.categories),
        default=DEFAULT_CATEGORY_WEIGHT,
    )
    multiplier = config.seniority_multipliers.get(contact.seniority or "", 1.0)
    raw = max_weight * multiplier / RELEVANCE_DIVISOR * 10
    return min(round_half_up(raw, 1), MAX_SUB_SCORE)


def accessibility_score(contact: Contact) -> float:
    score = 0
    mutual = contact.mutual_connections_count or 0
    if mutual >= 5:
        score += 4
    elif mutual >= 2:
        score += 2
    elif mutual >= 1:
        score += 1

    if contact.is_active_on_profile or contact.has_open_to_connect:
        score += 2
    if contact.introduction_source:
        score += 3

    return float(min(score, MAX_SUB_SCORE))


def timing_score(contact: Contact) -> float:
    # Placeholder until timing-trigger sources (job changes, funding news) exist
    return 0.0


def calculate_priority(contact: Contact, config: PriorityScoringConfig) -> PriorityBreakdown:
    relevance = relevance_score(contact, config)
    accessibility = accessibility_score(contact)
    timing = timing_score(contact)

    total = (
        relevance * config.relevance_weight
        + accessibility * config.accessibility_weight
        + timing * config.timing_weight
    )
    total = max(0.0, min(round_half_up(total, 2), MAX_SUB_SCORE))
    return PriorityBreakdown(
        relevance=relevance, accessibility=accessibility, timing=timing, total=total
    )
