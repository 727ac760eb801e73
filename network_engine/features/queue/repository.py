"""
Queue item and outreach template persistence.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any

import psycopg

from network_engine.db.helpers import advisory_locks, execute_query, fetch_all, fetch_one
from network_engine.domain.models import QueueItem, Template

QUEUE_ITEM_COLUMNS = (
    "id, contact_id, queue_date, action_type, status, template_id, personalized_message, "
    "notes, snooze_until, executed_at, result, created_at"
)


class QueueRepository:
    @staticmethod
    def locked_for_date(queue_date: date):
        """Transaction serializing generation runs for one queue date."""
        return advisory_locks([f"queue:{queue_date.isoformat()}"])

    @staticmethod
    async def clear_open_items(
        queue_date: date, *, connection: psycopg.AsyncConnection | None = None
    ) -> int:
        return await execute_query(
            "DELETE FROM queue_items WHERE queue_date = %s AND status IN ('pending', 'approved')",
            (queue_date,),
            connection=connection,
        )

    @staticmethod
    async def blocked_pairs(
        queue_date: date, *, connection: psycopg.AsyncConnection | None = None
    ) -> set[tuple[str, str]]:
        """
        (contact_id, action_type) pairs that must not be queued for ``queue_date``.

        Any item still on the date blocks, as does an open item for the same
        action on another date.
        """
        rows = await fetch_all(
            """
            SELECT DISTINCT contact_id, action_type
              FROM queue_items
             WHERE queue_date = %s
                OR status IN ('pending', 'approved')
                OR (status = 'snoozed' AND snooze_until > %s)
            """,
            (queue_date, queue_date),
            connection=connection,
        )
        return {(row["contact_id"], row["action_type"]) for row in rows}

    @staticmethod
    async def insert_items(
        items: Sequence[dict[str, Any]], *, connection: psycopg.AsyncConnection | None = None
    ) -> int:
        """Insert items, ignoring any that collide on (contact, date, action)."""
        inserted = 0
        for item in items:
            inserted += await execute_query(
                """
                INSERT INTO queue_items (contact_id, queue_date, action_type, status, template_id,
                                         personalized_message, notes)
                VALUES (%s, %s, %s, 'pending', %s, %s, %s)
                ON CONFLICT (contact_id, queue_date, action_type) DO NOTHING
                """,
                (
                    item["contact_id"],
                    item["queue_date"],
                    item["action_type"],
                    item.get("template_id"),
                    item.get("personalized_message"),
                    item.get("notes"),
                ),
                connection=connection,
            )
        return inserted

    @staticmethod
    async def get_item(
        item_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> QueueItem | None:
        row = await fetch_one(
            f"SELECT {QUEUE_ITEM_COLUMNS} FROM queue_items WHERE id = %s",
            (item_id,),
            connection=connection,
        )
        return QueueItem.from_row(row) if row else None

    @staticmethod
    async def mark_executed(
        item_id: str, notes: str | None, *, connection: psycopg.AsyncConnection | None = None
    ) -> QueueItem:
        row = await fetch_one(
            f"""
            UPDATE queue_items
               SET status = 'executed', result = 'success', executed_at = NOW(),
                   notes = COALESCE(%s, notes)
             WHERE id = %s
            RETURNING {QUEUE_ITEM_COLUMNS}
            """,
            (notes, item_id),
            connection=connection,
        )
        return QueueItem.from_row(row)

    @staticmethod
    async def mark_skipped(
        item_id: str, reason: str | None, *, connection: psycopg.AsyncConnection | None = None
    ) -> QueueItem:
        row = await fetch_one(
            f"""
            UPDATE queue_items
               SET status = 'skipped', notes = COALESCE(%s, notes)
             WHERE id = %s
            RETURNING {QUEUE_ITEM_COLUMNS}
            """,
            (reason, item_id),
            connection=connection,
        )
        return QueueItem.from_row(row)

    @staticmethod
    async def snooze(item_id: str, snooze_until: date) -> QueueItem:
        row = await fetch_one(
            f"""
            UPDATE queue_items
               SET status = 'snoozed', snooze_until = %s
             WHERE id = %s
            RETURNING {QUEUE_ITEM_COLUMNS}
            """,
            (snooze_until, item_id),
        )
        return QueueItem.from_row(row)

    @staticmethod
    async def approve(item_ids: Iterable[str]) -> int:
        ids = list(item_ids)
        if not ids:
            return 0
        return await execute_query(
            "UPDATE queue_items SET status = 'approved' WHERE id = ANY(%s) AND status = 'pending'",
            (ids,),
        )

    @staticmethod
    async def status_counts(queue_date: date) -> dict[str, int]:
        rows = await fetch_all(
            """
            SELECT status, COUNT(*) AS count
              FROM queue_items
             WHERE queue_date = %s
             GROUP BY status
            """,
            (queue_date,),
        )
        return {row["status"]: int(row["count"]) for row in rows}

    @staticmethod
    async def pending_send_requests(queue_date: date) -> list[dict[str, Any]]:
        """Open connection requests for the date that have a profile URL and a message."""
        rows = await fetch_all(
            """
            SELECT q.id AS queue_item_id, q.contact_id, c.linkedin_url AS profile_url,
                   q.personalized_message AS message, c.first_name, c.last_name
              FROM queue_items q
              JOIN contacts c ON c.id = q.contact_id
             WHERE q.queue_date = %s
               AND q.action_type = 'connection_request'
               AND q.status IN ('pending', 'approved')
               AND c.deleted_at IS NULL
               AND c.linkedin_url IS NOT NULL
               AND q.personalized_message IS NOT NULL
             ORDER BY c.priority_score DESC NULLS LAST, q.created_at, q.id
            """,
            (queue_date,),
        )
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    @staticmethod
    async def active_templates() -> list[Template]:
        rows = await fetch_all(
            """
            SELECT id, name, body, category_id, is_active, times_used
              FROM templates
             WHERE is_active = true
             ORDER BY id
            """
        )
        return [Template.from_row(row) for row in rows]

    @staticmethod
    async def increment_template_usage(
        template_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "UPDATE templates SET times_used = times_used + 1 WHERE id = %s",
            (template_id,),
            connection=connection,
        )
