"""
Interaction ledger persistence. Rows are append-only.
"""

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import psycopg

from network_engine.db.helpers import fetch_all, fetch_one
from network_engine.domain.models import Interaction
from network_engine.domain.types import OUTBOUND_TYPES, RECIPROCAL_TYPES


class InteractionRepository:
    @staticmethod
    async def insert(
        contact_id: str,
        interaction_type: str,
        source: str,
        occurred_at: datetime,
        points_value: int,
        metadata: dict[str, Any] | None = None,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Interaction:
        row = await fetch_one(
            """
            INSERT INTO interactions (contact_id, type, source, occurred_at, points_value, metadata)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id, contact_id, type, source, occurred_at, points_value, metadata
            """,
            (
                contact_id,
                interaction_type,
                source,
                occurred_at,
                points_value,
                json.dumps(metadata or {}),
            ),
            connection=connection,
        )
        return Interaction.from_row(row)

    @staticmethod
    async def list_for_contact(
        contact_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> list[Interaction]:
        rows = await fetch_all(
            """
            SELECT id, contact_id, type, source, occurred_at, points_value, metadata
              FROM interactions
             WHERE contact_id = %s
             ORDER BY occurred_at, id
            """,
            (contact_id,),
            connection=connection,
        )
        return [Interaction.from_row(row) for row in rows]

    @staticmethod
    async def counts_for_contact(
        contact_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> dict[str, int]:
        """Total and reciprocal interaction counts."""
        row = await fetch_one(
            """
            SELECT COUNT(*) AS total,
                   COUNT(*) FILTER (WHERE type = ANY(%s)) AS reciprocal
              FROM interactions
             WHERE contact_id = %s
            """,
            (sorted(RECIPROCAL_TYPES), contact_id),
            connection=connection,
        )
        return {"total": int(row["total"]), "reciprocal": int(row["reciprocal"])}

    @staticmethod
    async def last_outbound_times(contact_ids: Iterable[str]) -> dict[str, datetime]:
        """Most recent outbound interaction per contact."""
        ids = list(contact_ids)
        if not ids:
            return {}
        rows = await fetch_all(
            """
            SELECT contact_id, MAX(occurred_at) AS last_outbound_at
              FROM interactions
             WHERE contact_id = ANY(%s) AND type = ANY(%s)
             GROUP BY contact_id
            """,
            (ids, sorted(OUTBOUND_TYPES)),
        )
        return {row["contact_id"]: row["last_outbound_at"] for row in rows}
