"""
Repository helpers for scoring config rows and score snapshots.
"""

from collections.abc import Iterable
from datetime import date
from typing import Any

import psycopg

from network_engine.db.helpers import execute_query, fetch_all, fetch_one
from network_engine.domain.models import ScoreSnapshot
from network_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ScoringConfigRepository:
    @staticmethod
    async def fetch_rows() -> list[dict[str, Any]]:
        return await fetch_all(
            "SELECT config_type, key, value FROM scoring_config ORDER BY config_type, key"
        )


class ScoreHistoryRepository:
    """One snapshot per (contact, score_type, day); a re-run overwrites the day."""

    @staticmethod
    async def upsert_snapshot(
        contact_id: str,
        score_type: str,
        score_value: float,
        recorded_at: date,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        await execute_query(
            """
            INSERT INTO score_history (contact_id, score_type, score_value, recorded_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (contact_id, score_type, recorded_at)
            DO UPDATE SET score_value = EXCLUDED.score_value
            """,
            (contact_id, score_type, score_value, recorded_at),
            connection=connection,
        )

    @staticmethod
    async def max_since(
        contact_id: str,
        since: date,
        score_type: str = "relationship",
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> float | None:
        row = await fetch_one(
            """
            SELECT MAX(score_value) AS best
              FROM score_history
             WHERE contact_id = %s AND score_type = %s AND recorded_at >= %s
            """,
            (contact_id, score_type, since),
            connection=connection,
        )
        return float(row["best"]) if row and row["best"] is not None else None

    @staticmethod
    async def earliest_since(
        contact_ids: Iterable[str], since: date, score_type: str = "relationship"
    ) -> dict[str, ScoreSnapshot]:
        """Earliest snapshot inside the window for each contact."""
        ids = list(contact_ids)
        if not ids:
            return {}
        rows = await fetch_all(
            """
            SELECT DISTINCT ON (contact_id) contact_id, score_type, score_value, recorded_at
              FROM score_history
             WHERE contact_id = ANY(%s) AND score_type = %s AND recorded_at >= %s
             ORDER BY contact_id, recorded_at ASC
            """,
            (ids, score_type, since),
        )
        return {row["contact_id"]: ScoreSnapshot.from_row(row) for row in rows}
