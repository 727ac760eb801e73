"""
Duplicate pair and merge history persistence.
"""

import json

import psycopg

from network_engine.db.helpers import execute_query, fetch_all, fetch_one
from network_engine.domain.models import DuplicatePair, MergeRecord


class DuplicateRepository:
    @staticmethod
    async def existing_pairs() -> dict[tuple[str, str], str]:
        """(contact_a_id, contact_b_id) -> status for every recorded pair."""
        rows = await fetch_all("SELECT contact_a_id, contact_b_id, status FROM duplicate_pairs")
        return {(row["contact_a_id"], row["contact_b_id"]): row["status"] for row in rows}

    @staticmethod
    async def get_pair(
        pair_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> DuplicatePair | None:
        row = await fetch_one(
            "SELECT * FROM duplicate_pairs WHERE id = %s", (pair_id,), connection=connection
        )
        return DuplicatePair.from_row(row) if row else None

    @staticmethod
    async def upsert_pair(
        pair: DuplicatePair, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        """Insert or update on the ordered pair; contact_a_id < contact_b_id."""
        await execute_query(
            """
            INSERT INTO duplicate_pairs (contact_a_id, contact_b_id, match_type, confidence, status,
                                         resolved_at)
            VALUES (%s, %s, %s, %s, %s, CASE WHEN %s = 'pending' THEN NULL ELSE NOW() END)
            ON CONFLICT (contact_a_id, contact_b_id) DO UPDATE
               SET match_type = EXCLUDED.match_type,
                   confidence = EXCLUDED.confidence,
                   status = EXCLUDED.status,
                   resolved_at = EXCLUDED.resolved_at
            """,
            (
                pair.contact_a_id,
                pair.contact_b_id,
                pair.match_type,
                pair.confidence,
                pair.status,
                pair.status,
            ),
            connection=connection,
        )

    @staticmethod
    async def set_status(
        pair_id: str, status: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "UPDATE duplicate_pairs SET status = %s, resolved_at = NOW() WHERE id = %s",
            (status, pair_id),
            connection=connection,
        )

    @staticmethod
    async def insert_merge_history(
        record: MergeRecord, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            """
            INSERT INTO merge_history (primary_contact_id, merged_contact_id, merged_contact_data,
                                       merge_type)
            VALUES (%s, %s, %s, %s)
            """,
            (
                record.primary_contact_id,
                record.merged_contact_id,
                json.dumps(record.merged_contact_data),
                record.merge_type,
            ),
            connection=connection,
        )
