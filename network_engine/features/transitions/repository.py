"""
Status history persistence. Rows are append-only.
"""

from collections.abc import Iterable
from datetime import datetime

import psycopg

from network_engine.db.helpers import fetch_all, fetch_one
from network_engine.domain.models import StatusChange


class StatusHistoryRepository:
    @staticmethod
    async def insert(
        change: StatusChange, *, connection: psycopg.AsyncConnection | None = None
    ) -> StatusChange:
        row = await fetch_one(
            """
            INSERT INTO status_history (contact_id, from_status, to_status, trigger, reason)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id, contact_id, from_status, to_status, trigger, reason, created_at
            """,
            (change.contact_id, change.from_status, change.to_status, change.trigger, change.reason),
            connection=connection,
        )
        return StatusChange.from_row(row)

    @staticmethod
    async def latest_entry_times(
        contact_ids: Iterable[str], to_status: str
    ) -> dict[str, datetime]:
        """Most recent time each contact entered ``to_status``."""
        ids = list(contact_ids)
        if not ids:
            return {}
        rows = await fetch_all(
            """
            SELECT contact_id, MAX(created_at) AS entered_at
              FROM status_history
             WHERE contact_id = ANY(%s) AND to_status = %s
             GROUP BY contact_id
            """,
            (ids, to_status),
        )
        return {row["contact_id"]: row["entered_at"] for row in rows}
