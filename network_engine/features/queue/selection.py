"""
Pure selection rules for the daily queue.

Every function is deterministic for a given input so that regenerating a
day's queue over unchanged data yields the same item set.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from network_engine.domain.models import Contact, ScoreSnapshot
from network_engine.features.scoring.config import QueueConfig, TransitionThresholds
from network_engine.features.transitions.rules import going_cold_drop
from network_engine.utils.clock import start_of_day

BlockedPairs = set[tuple[str, str]]

_OLDEST = datetime.min.replace(tzinfo=UTC)


@dataclass(slots=True)
class FollowUpCandidate:
    contact: Contact
    reason: str


@dataclass(slots=True)
class ReEngagementCandidate:
    contact: Contact
    previous_score: float
    drop: float

    @property
    def note(self) -> str:
        return (
            f"Score dropped from {self.previous_score:g} "
            f"to {self.contact.relationship_score}"
        )


def select_connection_requests(
    targets: Iterable[Contact], blocked: BlockedPairs, budget: int
) -> tuple[list[Contact], list[str]]:
    """
    (selected, skipped_ids) for connection requests.

    Candidates are active targets with a priority score, ordered by
    priority desc, then created_at and id ascending. Anything eligible past
    ``budget`` is reported as rate-limited.
    """
    eligible = [
        contact
        for contact in targets
        if contact.status == "target"
        and contact.priority_score is not None
        and (contact.id, "connection_request") not in blocked
    ]
    eligible.sort(key=lambda c: (-c.priority_score, c.created_at or _OLDEST, c.id))
    budget = max(0, budget)
    return eligible[:budget], [contact.id for contact in eligible[budget:]]


def select_follow_ups(
    contacts: Iterable[Contact],
    queue_date: date,
    config: QueueConfig,
    blocked: BlockedPairs,
    connected_at: Mapping[str, datetime] | None = None,
    last_outbound_at: Mapping[str, datetime] | None = None,
) -> list[FollowUpCandidate]:
    """
    Stale nurture-band contacts plus fresh connections nobody has messaged.

    Ordered stalest first, then id, capped at ``config.max_follow_ups``.
    """
    connected_at = connected_at or {}
    last_outbound_at = last_outbound_at or {}
    day_start = start_of_day(queue_date)
    stale_before = day_start - timedelta(days=config.follow_up_stale_days)
    fresh_after = day_start - timedelta(days=config.new_connection_follow_up_days)

    selected: list[FollowUpCandidate] = []
    for contact in contacts:
        if contact.status not in ("connected", "engaged", "relationship"):
            continue
        if (contact.id, "follow_up") in blocked:
            continue

        stale = contact.last_interaction_at is None or contact.last_interaction_at < stale_before
        in_band = (
            config.follow_up_min_score <= contact.relationship_score <= config.follow_up_max_score
        )
        if stale and in_band:
            selected.append(FollowUpCandidate(contact, "stale"))
            continue

        entered = connected_at.get(contact.id)
        if contact.status == "connected" and entered is not None and entered >= fresh_after:
            outbound = last_outbound_at.get(contact.id)
            if outbound is None or outbound < entered:
                selected.append(FollowUpCandidate(contact, "new_connection"))

    selected.sort(key=lambda c: (c.contact.last_interaction_at or _OLDEST, c.contact.id))
    return selected[: config.max_follow_ups]


def select_re_engagements(
    contacts: Iterable[Contact],
    earliest_snapshots: Mapping[str, ScoreSnapshot],
    thresholds: TransitionThresholds,
    config: QueueConfig,
    blocked: BlockedPairs,
    exclude: Sequence[str] = (),
) -> list[ReEngagementCandidate]:
    """Going-cold engaged/relationship contacts, largest drop first."""
    excluded = set(exclude)
    selected: list[ReEngagementCandidate] = []
    for contact in contacts:
        if contact.status not in ("engaged", "relationship"):
            continue
        if contact.id in excluded or (contact.id, "re_engagement") in blocked:
            continue
        snapshot = earliest_snapshots.get(contact.id)
        drop = going_cold_drop(contact.relationship_score, snapshot, thresholds)
        if drop is None:
            continue
        selected.append(ReEngagementCandidate(contact, snapshot.score_value, drop))

    selected.sort(key=lambda c: (-c.drop, c.contact.id))
    return selected[: config.max_re_engagements]
