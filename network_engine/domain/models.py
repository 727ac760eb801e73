"""
Domain records for the relationship engine.

Plain dataclasses mirroring table rows. They carry no persistence logic so
repositories, services and tests can build them directly.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any


def _from_row(cls, row: dict[str, Any]):
    names = {f.name for f in fields(cls)}
    return cls(**{key: value for key, value in row.items() if key in names})


@dataclass(slots=True)
class Category:
    id: str
    name: str
    relevance_weight: int = 1


@dataclass(slots=True)
class Contact:
    id: str
    first_name: str
    last_name: str
    status: str = "target"
    title: str | None = None
    company: str | None = None
    location: str | None = None
    headline: str | None = None
    linkedin_url: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    introduction_source: str | None = None
    seniority: str | None = None
    relationship_score: int = 0
    priority_score: float | None = None
    mutual_connections_count: int = 0
    is_active_on_profile: bool = False
    has_open_to_connect: bool = False
    field_sources: dict[str, str] = field(default_factory=dict)
    categories: list[Category] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_interaction_at: datetime | None = None
    deleted_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Contact":
        contact = _from_row(cls, row)
        if contact.priority_score is not None:
            contact.priority_score = float(contact.priority_score)
        contact.field_sources = dict(row.get("field_sources") or {})
        contact.categories = [
            category if isinstance(category, Category) else Category(**category)
            for category in (row.get("categories") or [])
        ]
        return contact


@dataclass(slots=True)
class Interaction:
    """Immutable ledger entry."""

    id: str
    contact_id: str
    type: str
    source: str
    occurred_at: datetime
    points_value: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Interaction":
        interaction = _from_row(cls, row)
        interaction.metadata = dict(row.get("metadata") or {})
        return interaction


@dataclass(slots=True)
class StatusChange:
    """A status_history row."""

    contact_id: str
    from_status: str | None
    to_status: str
    trigger: str
    reason: str | None = None
    created_at: datetime | None = None
    id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StatusChange":
        return _from_row(cls, row)


@dataclass(slots=True)
class ScoreSnapshot:
    contact_id: str
    score_type: str
    score_value: float
    recorded_at: date

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ScoreSnapshot":
        snapshot = _from_row(cls, row)
        snapshot.score_value = float(snapshot.score_value)
        return snapshot


@dataclass(slots=True)
class Template:
    id: str
    name: str
    body: str
    category_id: str | None = None
    is_active: bool = True
    times_used: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Template":
        return _from_row(cls, row)


@dataclass(slots=True)
class QueueItem:
    id: str
    contact_id: str
    queue_date: date
    action_type: str
    status: str = "pending"
    template_id: str | None = None
    personalized_message: str | None = None
    notes: str | None = None
    snooze_until: date | None = None
    executed_at: datetime | None = None
    result: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "QueueItem":
        return _from_row(cls, row)


@dataclass(slots=True)
class DuplicatePair:
    contact_a_id: str
    contact_b_id: str
    match_type: str
    confidence: str
    status: str = "pending"
    id: str | None = None
    resolved_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DuplicatePair":
        return _from_row(cls, row)


@dataclass(slots=True)
class MergeRecord:
    """A merge_history row."""

    primary_contact_id: str
    merged_contact_id: str
    merged_contact_data: dict[str, Any]
    merge_type: str


@dataclass(slots=True)
class DataConflict:
    id: str
    contact_id: str
    field_name: str
    current_value: str | None
    current_source: str
    incoming_value: str | None
    incoming_source: str
    resolved: bool = False
    resolved_value: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DataConflict":
        return _from_row(cls, row)
