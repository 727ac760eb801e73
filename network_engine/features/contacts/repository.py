"""
Contact persistence.

Every read goes through the active-contact view (``deleted_at IS NULL``);
soft-deleted contacts are invisible to scoring, transitions, duplicate
detection and queue generation.
"""

import json
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

import psycopg
from psycopg import sql

from network_engine.db.helpers import advisory_locks, execute_query, fetch_all, fetch_one
from network_engine.domain.models import Category, Contact, DataConflict

ACTIVE_CONTACT = "c.deleted_at IS NULL"

CONTACT_SELECT = f"""
    SELECT c.*,
           COALESCE(
               (SELECT json_agg(
                           json_build_object(
                               'id', cat.id,
                               'name', cat.name,
                               'relevance_weight', cat.relevance_weight
                           )
                           ORDER BY cat.name
                       )
                  FROM contact_categories cc
                  JOIN categories cat ON cat.id = cc.category_id
                 WHERE cc.contact_id = c.id),
               '[]'::json
           ) AS categories
      FROM contacts c
     WHERE {ACTIVE_CONTACT}
"""

INSERTABLE_COLUMNS = (
    "first_name",
    "last_name",
    "status",
    "title",
    "company",
    "location",
    "headline",
    "linkedin_url",
    "email",
    "phone",
    "notes",
    "introduction_source",
    "seniority",
    "mutual_connections_count",
    "is_active_on_profile",
    "has_open_to_connect",
)


class ContactRepository:
    """Raw SQL access to the contacts table and its category links."""

    @staticmethod
    def locked(*contact_ids: str):
        """Transaction holding per-contact advisory locks; yields the connection."""
        return advisory_locks(contact_ids)

    @staticmethod
    async def get_active(
        contact_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> Contact | None:
        row = await fetch_one(CONTACT_SELECT + " AND c.id = %s", (contact_id,), connection=connection)
        return Contact.from_row(row) if row else None

    @staticmethod
    async def fetch_page(
        *,
        statuses: Sequence[str] | None = None,
        after: tuple[datetime, str] | None = None,
        limit: int = 100,
    ) -> list[Contact]:
        """Keyset page ordered by creation time, resumable from the last seen row."""
        query = CONTACT_SELECT
        params: list[Any] = []
        if statuses:
            query += " AND c.status = ANY(%s)"
            params.append(list(statuses))
        if after:
            query += " AND (c.created_at, c.id) > (%s, %s)"
            params.extend(after)
        query += " ORDER BY c.created_at, c.id LIMIT %s"
        params.append(limit)

        rows = await fetch_all(query, tuple(params))
        return [Contact.from_row(row) for row in rows]

    @staticmethod
    async def list_active(statuses: Sequence[str] | None = None) -> list[Contact]:
        query = CONTACT_SELECT
        params: tuple = ()
        if statuses:
            query += " AND c.status = ANY(%s)"
            params = (list(statuses),)
        rows = await fetch_all(query + " ORDER BY c.created_at, c.id", params)
        return [Contact.from_row(row) for row in rows]

    @staticmethod
    async def insert(
        values: dict[str, Any],
        field_sources: dict[str, str],
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Contact:
        """Insert a contact. A duplicate linkedin_url raises ``UniqueViolation``."""
        columns = [column for column in INSERTABLE_COLUMNS if column in values]
        query = sql.SQL(
            "INSERT INTO contacts ({columns}, field_sources) VALUES ({values}, %s) RETURNING id"
        ).format(
            columns=sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        params = tuple(values[column] for column in columns) + (json.dumps(field_sources),)
        row = await fetch_one(query, params, connection=connection)
        return await ContactRepository.get_active(row["id"], connection=connection)

    @staticmethod
    async def update_status(
        contact_id: str, status: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "UPDATE contacts SET status = %s, updated_at = NOW() WHERE id = %s",
            (status, contact_id),
            connection=connection,
        )

    @staticmethod
    async def update_relationship_score(
        contact_id: str, score: int, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "UPDATE contacts SET relationship_score = %s, updated_at = NOW() WHERE id = %s",
            (score, contact_id),
            connection=connection,
        )

    @staticmethod
    async def update_priority_score(
        contact_id: str, score: float, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            "UPDATE contacts SET priority_score = %s, updated_at = NOW() WHERE id = %s",
            (score, contact_id),
            connection=connection,
        )

    @staticmethod
    async def touch_last_interaction(
        contact_id: str, occurred_at: datetime, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        """Advance last_interaction_at; backdated interactions never move it backwards."""
        await execute_query(
            """
            UPDATE contacts
               SET last_interaction_at = GREATEST(COALESCE(last_interaction_at, %s), %s),
                   updated_at = NOW()
             WHERE id = %s
            """,
            (occurred_at, occurred_at, contact_id),
            connection=connection,
        )

    @staticmethod
    async def update_fields(
        contact_id: str,
        values: dict[str, Any],
        field_sources: dict[str, str] | None = None,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        """
        Write column values and merge their provenance tags.

        Column names come from the closed field tables of the callers.
        """
        if not values and not field_sources:
            return
        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder())
            for column in values
        ]
        assignments.append(sql.SQL("field_sources = field_sources || %s::jsonb"))
        assignments.append(sql.SQL("updated_at = NOW()"))
        query = sql.SQL("UPDATE contacts SET {} WHERE id = %s").format(
            sql.SQL(", ").join(assignments)
        )
        params = (*values.values(), json.dumps(field_sources or {}), contact_id)
        await execute_query(query, params, connection=connection)

    @staticmethod
    async def soft_delete(
        contact_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> bool:
        count = await execute_query(
            "UPDATE contacts SET deleted_at = NOW(), updated_at = NOW() "
            "WHERE id = %s AND deleted_at IS NULL",
            (contact_id,),
            connection=connection,
        )
        return count > 0

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    async def ensure_category(
        name: str, relevance_weight: int, *, connection: psycopg.AsyncConnection | None = None
    ) -> Category:
        row = await fetch_one(
            """
            INSERT INTO categories (name, relevance_weight)
            VALUES (%s, %s)
            ON CONFLICT (name) DO UPDATE SET relevance_weight = EXCLUDED.relevance_weight
            RETURNING id, name, relevance_weight
            """,
            (name, relevance_weight),
            connection=connection,
        )
        return Category(**row)

    @staticmethod
    async def assign_category(
        contact_id: str, category_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            """
            INSERT INTO contact_categories (contact_id, category_id)
            VALUES (%s, %s)
            ON CONFLICT DO NOTHING
            """,
            (contact_id, category_id),
            connection=connection,
        )

    @staticmethod
    async def remove_category(
        contact_id: str, category_name: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> None:
        await execute_query(
            """
            DELETE FROM contact_categories cc
             USING categories cat
             WHERE cc.category_id = cat.id
               AND cc.contact_id = %s
               AND cat.name = %s
            """,
            (contact_id, category_name),
            connection=connection,
        )

    @staticmethod
    async def get_many_active(contact_ids: Iterable[str]) -> list[Contact]:
        ids = list(contact_ids)
        if not ids:
            return []
        rows = await fetch_all(CONTACT_SELECT + " AND c.id = ANY(%s) ORDER BY c.id", (ids,))
        return [Contact.from_row(row) for row in rows]


class DataConflictRepository:
    @staticmethod
    async def insert(
        contact_id: str,
        field_name: str,
        current_value: str | None,
        current_source: str,
        incoming_value: str | None,
        incoming_source: str,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> DataConflict:
        row = await fetch_one(
            """
            INSERT INTO data_conflicts (
                contact_id, field_name, current_value, current_source,
                incoming_value, incoming_source
            )
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (contact_id, field_name, current_value, current_source, incoming_value, incoming_source),
            connection=connection,
        )
        return DataConflict.from_row(row)

    @staticmethod
    async def get_open(
        conflict_id: str, *, connection: psycopg.AsyncConnection | None = None
    ) -> DataConflict | None:
        row = await fetch_one(
            "SELECT * FROM data_conflicts WHERE id = %s AND resolved = false",
            (conflict_id,),
            connection=connection,
        )
        return DataConflict.from_row(row) if row else None

    @staticmethod
    async def mark_resolved(
        conflict_id: str,
        resolved_value: str | None,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> DataConflict:
        row = await fetch_one(
            """
            UPDATE data_conflicts
               SET resolved = true, resolved_value = %s, resolved_at = NOW()
             WHERE id = %s
            RETURNING *
            """,
            (resolved_value, conflict_id),
            connection=connection,
        )
        return DataConflict.from_row(row)
