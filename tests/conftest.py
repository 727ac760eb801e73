import copy
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

import pytest
from psycopg import errors as pg_errors

from network_engine.domain.models import (
    Category,
    Contact,
    DataConflict,
    DuplicatePair,
    Interaction,
    QueueItem,
    ScoreSnapshot,
    StatusChange,
    Template,
)
from network_engine.domain.types import OUTBOUND_TYPES, RECIPROCAL_TYPES
from network_engine.features.categorization.service import CategorizationService
from network_engine.features.contacts.service import ContactService
from network_engine.features.duplicates.service import DuplicateService
from network_engine.features.interactions.service import InteractionService
from network_engine.features.outreach.execution import OutreachExecutor
from network_engine.features.outreach.rate_limiter import LinkedInRateLimiter
from network_engine.features.queue.service import QueueService
from network_engine.features.scoring.config import RateLimitConfig
from network_engine.features.scoring.service import ScoringService
from network_engine.features.transitions.service import TransitionService

_ids = itertools.count(1)


def next_id(prefix: str) -> str:
    return f"{prefix}-{next(_ids):05d}"


def _score(value: Any) -> float:
    if value == "+inf":
        return float("inf")
    if value == "-inf":
        return float("-inf")
    return float(value)


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.sorted_sets: dict[str, dict[str, float]] = {}
        self.ttls: dict[str, int] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        if ttl_s:
            self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def mget(self, *keys: str) -> list[str | None]:
        return [self.store.get(key) for key in keys]

    async def incr_many_with_ttl(
        self, ttls: dict[str, int], extra_sets: dict[str, str] | None = None
    ) -> list[int]:
        values = []
        for key, ttl_s in ttls.items():
            value = int(self.store.get(key, 0)) + 1
            self.store[key] = str(value)
            self.ttls[key] = ttl_s
            values.append(value)
        self.store.update(extra_sets or {})
        return values

    async def decr_many(self, keys: list[str]) -> None:
        for key in keys:
            self.store[key] = str(int(self.store.get(key, 0)) - 1)

    async def zadd_with_ttl(self, key: str, member: str, score: float, ttl_s: int) -> None:
        self.sorted_sets.setdefault(key, {})[member] = float(score)
        self.ttls[key] = ttl_s

    async def zrem(self, key: str, member: str) -> None:
        self.sorted_sets.get(key, {}).pop(member, None)

    async def zcount(self, key: str, min_score, max_score) -> int:
        low, high = _score(min_score), _score(max_score)
        return sum(1 for score in self.sorted_sets.get(key, {}).values() if low <= score <= high)

    async def zremrangebyscore(self, key: str, min_score, max_score) -> int:
        low, high = _score(min_score), _score(max_score)
        members = self.sorted_sets.get(key, {})
        doomed = [member for member, score in members.items() if low <= score <= high]
        for member in doomed:
            del members[member]
        return len(doomed)


@asynccontextmanager
async def _no_lock():
    yield None


class FakeContacts:
    def __init__(self):
        self.rows: dict[str, Contact] = {}
        self.categories: dict[str, Category] = {}

    def add(self, **fields: Any) -> Contact:
        fields.setdefault("id", next_id("contact"))
        fields.setdefault("last_name", "Doe")
        fields.setdefault("created_at", datetime(2025, 1, 1, tzinfo=UTC))
        contact = Contact(**fields)
        self.rows[contact.id] = contact
        return copy.deepcopy(contact)

    def locked(self, *contact_ids: str):
        return _no_lock()

    def _active(self):
        return [c for c in self.rows.values() if c.deleted_at is None]

    async def get_active(self, contact_id, *, connection=None):
        contact = self.rows.get(contact_id)
        if contact is None or contact.deleted_at is not None:
            return None
        return copy.deepcopy(contact)

    async def fetch_page(self, *, statuses=None, after=None, limit=100):
        rows = sorted(self._active(), key=lambda c: (c.created_at, c.id))
        if statuses:
            rows = [c for c in rows if c.status in statuses]
        if after:
            rows = [c for c in rows if (c.created_at, c.id) > after]
        return [copy.deepcopy(c) for c in rows[:limit]]

    async def list_active(self, statuses=None):
        return await self.fetch_page(statuses=statuses, limit=10_000)

    async def get_many_active(self, contact_ids):
        return [copy.deepcopy(c) for c in self._active() if c.id in set(contact_ids)]

    async def insert(self, values, field_sources, *, connection=None):
        url = values.get("linkedin_url")
        if url and any(c.linkedin_url == url for c in self._active()):
            raise pg_errors.UniqueViolation("duplicate key value violates unique constraint")
        contact = self.add(**values, field_sources=dict(field_sources))
        return contact

    async def update_status(self, contact_id, status, *, connection=None):
        self.rows[contact_id].status = status

    async def update_relationship_score(self, contact_id, score, *, connection=None):
        self.rows[contact_id].relationship_score = score

    async def update_priority_score(self, contact_id, score, *, connection=None):
        self.rows[contact_id].priority_score = score

    async def touch_last_interaction(self, contact_id, occurred_at, *, connection=None):
        contact = self.rows[contact_id]
        if contact.last_interaction_at is None or occurred_at > contact.last_interaction_at:
            contact.last_interaction_at = occurred_at

    async def update_fields(self, contact_id, values, field_sources=None, *, connection=None):
        contact = self.rows[contact_id]
        url = values.get("linkedin_url")
        if url and any(c.linkedin_url == url and c.id != contact_id for c in self._active()):
            raise pg_errors.UniqueViolation("duplicate key value violates unique constraint")
        for column, value in values.items():
            setattr(contact, column, value)
        contact.field_sources.update(field_sources or {})

    async def soft_delete(self, contact_id, *, connection=None):
        contact = self.rows.get(contact_id)
        if contact is None or contact.deleted_at is not None:
            return False
        contact.deleted_at = datetime.now(UTC)
        return True

    async def ensure_category(self, name, relevance_weight, *, connection=None):
        category = self.categories.get(name)
        if category is None:
            category = Category(id=next_id("category"), name=name)
            self.categories[name] = category
        category.relevance_weight = relevance_weight
        return copy.deepcopy(category)

    async def assign_category(self, contact_id, category_id, *, connection=None):
        contact = self.rows[contact_id]
        if all(c.id != category_id for c in contact.categories):
            category = next(c for c in self.categories.values() if c.id == category_id)
            contact.categories.append(copy.deepcopy(category))

    async def remove_category(self, contact_id, category_name, *, connection=None):
        contact = self.rows[contact_id]
        contact.categories = [c for c in contact.categories if c.name != category_name]


class FakeConflicts:
    def __init__(self):
        self.rows: dict[str, DataConflict] = {}

    async def insert(
        self,
        contact_id,
        field_name,
        current_value,
        current_source,
        incoming_value,
        incoming_source,
        *,
        connection=None,
    ):
        conflict = DataConflict(
            id=next_id("conflict"),
            contact_id=contact_id,
            field_name=field_name,
            current_value=current_value,
            current_source=current_source,
            incoming_value=incoming_value,
            incoming_source=incoming_source,
        )
        self.rows[conflict.id] = conflict
        return copy.deepcopy(conflict)

    async def get_open(self, conflict_id, *, connection=None):
        conflict = self.rows.get(conflict_id)
        return copy.deepcopy(conflict) if conflict and not conflict.resolved else None

    async def mark_resolved(self, conflict_id, resolved_value, *, connection=None):
        conflict = self.rows[conflict_id]
        conflict.resolved = True
        conflict.resolved_value = resolved_value
        conflict.resolved_at = datetime.now(UTC)
        return copy.deepcopy(conflict)


class FakeInteractions:
    def __init__(self):
        self.rows: list[Interaction] = []

    async def insert(
        self,
        contact_id,
        interaction_type,
        source,
        occurred_at,
        points_value,
        metadata=None,
        *,
        connection=None,
    ):
        interaction = Interaction(
            id=next_id("interaction"),
            contact_id=contact_id,
            type=interaction_type,
            source=source,
            occurred_at=occurred_at,
            points_value=points_value,
            metadata=dict(metadata or {}),
        )
        self.rows.append(interaction)
        return interaction

    def for_contact(self, contact_id):
        return [i for i in self.rows if i.contact_id == contact_id]

    async def list_for_contact(self, contact_id, *, connection=None):
        return sorted(self.for_contact(contact_id), key=lambda i: (i.occurred_at, i.id))

    async def counts_for_contact(self, contact_id, *, connection=None):
        rows = self.for_contact(contact_id)
        return {
            "total": len(rows),
            "reciprocal": sum(1 for i in rows if i.type in RECIPROCAL_TYPES),
        }

    async def last_outbound_times(self, contact_ids):
        latest: dict[str, datetime] = {}
        for i in self.rows:
            if i.contact_id in contact_ids and i.type in OUTBOUND_TYPES:
                if i.contact_id not in latest or i.occurred_at > latest[i.contact_id]:
                    latest[i.contact_id] = i.occurred_at
        return latest


class FakeStatusHistory:
    def __init__(self):
        self.rows: list[StatusChange] = []

    async def insert(self, change, *, connection=None):
        stored = copy.deepcopy(change)
        stored.id = next_id("status")
        stored.created_at = stored.created_at or datetime.now(UTC)
        self.rows.append(stored)
        return stored

    async def latest_entry_times(self, contact_ids, to_status):
        latest: dict[str, datetime] = {}
        for row in self.rows:
            if row.contact_id in contact_ids and row.to_status == to_status:
                if row.contact_id not in latest or row.created_at > latest[row.contact_id]:
                    latest[row.contact_id] = row.created_at
        return latest


class FakeScoreHistory:
    def __init__(self):
        self.rows: dict[tuple[str, str, date], float] = {}

    async def upsert_snapshot(
        self, contact_id, score_type, score_value, recorded_at, *, connection=None
    ):
        self.rows[(contact_id, score_type, recorded_at)] = float(score_value)

    async def max_since(self, contact_id, since, score_type="relationship", *, connection=None):
        values = [
            value
            for (cid, kind, day), value in self.rows.items()
            if cid == contact_id and kind == score_type and day >= since
        ]
        return max(values) if values else None

    async def earliest_since(self, contact_ids, since, score_type="relationship"):
        earliest: dict[str, ScoreSnapshot] = {}
        for (cid, kind, day), value in sorted(self.rows.items(), key=lambda item: item[0][2]):
            if cid in contact_ids and kind == score_type and day >= since and cid not in earliest:
                earliest[cid] = ScoreSnapshot(cid, kind, value, day)
        return earliest


class FakeConfigStore:
    def __init__(self, rows: list[dict[str, Any]] | None = None):
        self.rows = rows or []

    async def fetch_rows(self):
        return list(self.rows)


class FakeQueue:
    def __init__(self, contacts: FakeContacts):
        self.contacts = contacts
        self.items: dict[str, QueueItem] = {}
        self.templates: dict[str, Template] = {}

    def add_template(self, **fields: Any) -> Template:
        fields.setdefault("id", next_id("template"))
        fields.setdefault("name", fields["id"])
        template = Template(**fields)
        self.templates[template.id] = template
        return template

    def add_item(self, **fields: Any) -> QueueItem:
        fields.setdefault("id", next_id("item"))
        item = QueueItem(**fields)
        self.items[item.id] = item
        return item

    def for_date(self, queue_date):
        return [item for item in self.items.values() if item.queue_date == queue_date]

    def locked_for_date(self, queue_date):
        return _no_lock()

    async def clear_open_items(self, queue_date, *, connection=None):
        doomed = [
            item.id
            for item in self.for_date(queue_date)
            if item.status in ("pending", "approved")
        ]
        for item_id in doomed:
            del self.items[item_id]
        return len(doomed)

    async def blocked_pairs(self, queue_date, *, connection=None):
        return {
            (item.contact_id, item.action_type)
            for item in self.items.values()
            if item.queue_date == queue_date
            or item.status in ("pending", "approved")
            or (item.status == "snoozed" and item.snooze_until and item.snooze_until > queue_date)
        }

    async def insert_items(self, items, *, connection=None):
        inserted = 0
        existing = {(i.contact_id, i.queue_date, i.action_type) for i in self.items.values()}
        for item in items:
            key = (item["contact_id"], item["queue_date"], item["action_type"])
            if key in existing:
                continue
            existing.add(key)
            self.add_item(
                contact_id=item["contact_id"],
                queue_date=item["queue_date"],
                action_type=item["action_type"],
                template_id=item.get("template_id"),
                personalized_message=item.get("personalized_message"),
                notes=item.get("notes"),
            )
            inserted += 1
        return inserted

    async def get_item(self, item_id, *, connection=None):
        item = self.items.get(item_id)
        return copy.deepcopy(item) if item else None

    async def mark_executed(self, item_id, notes, *, connection=None):
        item = self.items[item_id]
        item.status = "executed"
        item.result = "success"
        item.executed_at = datetime.now(UTC)
        item.notes = notes if notes is not None else item.notes
        return copy.deepcopy(item)

    async def mark_skipped(self, item_id, reason, *, connection=None):
        item = self.items[item_id]
        item.status = "skipped"
        item.notes = reason if reason is not None else item.notes
        return copy.deepcopy(item)

    async def snooze(self, item_id, snooze_until):
        item = self.items[item_id]
        item.status = "snoozed"
        item.snooze_until = snooze_until
        return copy.deepcopy(item)

    async def approve(self, item_ids):
        approved = 0
        for item_id in item_ids:
            item = self.items.get(item_id)
            if item and item.status == "pending":
                item.status = "approved"
                approved += 1
        return approved

    async def status_counts(self, queue_date):
        counts: dict[str, int] = {}
        for item in self.for_date(queue_date):
            counts[item.status] = counts.get(item.status, 0) + 1
        return counts

    async def pending_send_requests(self, queue_date):
        requests = []
        for item in self.for_date(queue_date):
            contact = self.contacts.rows.get(item.contact_id)
            if (
                item.action_type == "connection_request"
                and item.status in ("pending", "approved")
                and contact is not None
                and contact.deleted_at is None
                and contact.linkedin_url
                and item.personalized_message
            ):
                requests.append(
                    {
                        "queue_item_id": item.id,
                        "contact_id": contact.id,
                        "profile_url": contact.linkedin_url,
                        "message": item.personalized_message,
                        "first_name": contact.first_name,
                        "last_name": contact.last_name,
                    }
                )
        return requests

    async def active_templates(self):
        return [copy.deepcopy(t) for t in self.templates.values() if t.is_active]

    async def increment_template_usage(self, template_id, *, connection=None):
        self.templates[template_id].times_used += 1


class FakeDuplicates:
    def __init__(self):
        self.pairs: dict[tuple[str, str], DuplicatePair] = {}
        self.merges: list = []

    async def existing_pairs(self):
        return {key: pair.status for key, pair in self.pairs.items()}

    async def get_pair(self, pair_id, *, connection=None):
        for pair in self.pairs.values():
            if pair.id == pair_id:
                return copy.deepcopy(pair)
        return None

    async def upsert_pair(self, pair, *, connection=None):
        key = (pair.contact_a_id, pair.contact_b_id)
        stored = copy.deepcopy(pair)
        stored.id = self.pairs[key].id if key in self.pairs else next_id("pair")
        self.pairs[key] = stored

    async def set_status(self, pair_id, status, *, connection=None):
        for pair in self.pairs.values():
            if pair.id == pair_id:
                pair.status = status

    async def insert_merge_history(self, record, *, connection=None):
        self.merges.append(record)


@dataclass
class Engine:
    redis: FakeRedis
    contacts: FakeContacts
    conflicts: FakeConflicts
    interactions: FakeInteractions
    status_history: FakeStatusHistory
    score_history: FakeScoreHistory
    queue_items: FakeQueue
    pairs: FakeDuplicates
    limiter: LinkedInRateLimiter
    scoring: ScoringService
    transitions: TransitionService
    interaction_service: InteractionService
    contact_service: ContactService
    queue: QueueService
    duplicates: DuplicateService
    outreach: OutreachExecutor
    categorization: CategorizationService


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def rate_limit_config():
    return RateLimitConfig(
        daily_limit=20,
        weekly_limit=100,
        min_gap_seconds=0,
        max_gap_seconds=0,
        cooldown_days=7,
        window_mode="calendar",
    )


@pytest.fixture
def engine(fake_redis, rate_limit_config):
    """Every service wired to in-memory repositories."""
    contacts = FakeContacts()
    conflicts = FakeConflicts()
    interactions = FakeInteractions()
    status_history = FakeStatusHistory()
    score_history = FakeScoreHistory()
    queue_items = FakeQueue(contacts)
    pairs = FakeDuplicates()
    limiter = LinkedInRateLimiter(fake_redis, rate_limit_config)

    scoring = ScoringService(contacts, interactions, score_history, FakeConfigStore())
    transitions = TransitionService(contacts, interactions, status_history, score_history, scoring)
    queue = QueueService(
        contacts,
        queue_items,
        interactions,
        status_history,
        score_history,
        scoring,
        transitions,
        limiter,
    )

    async def no_sleep(seconds):
        return None

    return Engine(
        redis=fake_redis,
        contacts=contacts,
        conflicts=conflicts,
        interactions=interactions,
        status_history=status_history,
        score_history=score_history,
        queue_items=queue_items,
        pairs=pairs,
        limiter=limiter,
        scoring=scoring,
        transitions=transitions,
        interaction_service=InteractionService(contacts, interactions, scoring, transitions),
        contact_service=ContactService(contacts, conflicts, status_history),
        queue=queue,
        duplicates=DuplicateService(contacts, pairs),
        outreach=OutreachExecutor(queue, queue_items, limiter, sleep=no_sleep),
        categorization=CategorizationService(contacts),
    )
