"""
Contact lifecycle entry points: create, soft delete, provenance-aware updates.
"""

from typing import Any

from psycopg import errors as pg_errors

from network_engine.domain.models import Contact, DataConflict, StatusChange
from network_engine.domain.requests import (
    ContactCreate,
    FieldUpdateRequest,
    parse_request,
)
from network_engine.domain.types import DEFAULT_FIELD_SOURCE, FIELD_SOURCES
from network_engine.errors import ConflictError, NotFoundError, ValidationError
from network_engine.features.transitions.repository import StatusHistoryRepository
from network_engine.infrastructure.observability.logging import get_logger

from .provenance import FIELD_COLUMNS, decide_update, read_field
from .repository import ContactRepository, DataConflictRepository

logger = get_logger(__name__)


def _duplicate_url(linkedin_url: str | None, source: str) -> ConflictError:
    logger.warning("Duplicate contact rejected", linkedin_url=linkedin_url, source=source)
    return ConflictError(
        "A contact with this LinkedIn URL already exists",
        code="DUPLICATE_CONTACT",
        linkedin_url=linkedin_url,
    )


class ContactService:
    def __init__(
        self,
        contacts=ContactRepository,
        conflicts=DataConflictRepository,
        status_history=StatusHistoryRepository,
    ):
        self.contacts = contacts
        self.conflicts = conflicts
        self.status_history = status_history

    async def create_contact(
        self, data: ContactCreate | dict[str, Any], source: str = "manual"
    ) -> Contact:
        """
        Insert a contact tagged with its entry channel.

        Contacts may be created directly into any status; the initial
        status_history row has no from_status.

        Raises:
            ValidationError: bad payload or unknown source
            ConflictError: profile URL already belongs to another contact
        """
        request = parse_request(ContactCreate, data)
        if source not in FIELD_SOURCES:
            raise ValidationError(f"Unknown field source '{source}'")

        values = request.model_dump(exclude_none=True)
        field_sources = {
            field_name: source for field_name in FIELD_COLUMNS if values.get(field_name)
        }

        try:
            async with self.contacts.locked() as conn:
                contact = await self.contacts.insert(values, field_sources, connection=conn)
                await self.status_history.insert(
                    StatusChange(
                        contact_id=contact.id,
                        from_status=None,
                        to_status=contact.status,
                        trigger="import" if source in ("import", "linkedin_scrape") else "manual",
                        reason=f"Created via {source}",
                    ),
                    connection=conn,
                )
        except pg_errors.UniqueViolation as e:
            raise _duplicate_url(request.linkedin_url, source) from e

        logger.info("Contact created", contact_id=contact.id, status=contact.status, source=source)
        return contact

    async def soft_delete_contact(self, contact_id: str) -> None:
        deleted = await self.contacts.soft_delete(contact_id)
        if not deleted:
            raise NotFoundError("Contact", contact_id)
        logger.info("Contact soft-deleted", contact_id=contact_id)

    async def apply_field_updates(
        self,
        contact_id: str,
        updates: dict[str, str | None],
        source: str,
    ) -> dict[str, Any]:
        """
        Apply incoming field values, respecting source rank.

        Returns:
            dict: {"applied": list[str], "conflicts": list[DataConflict]}

        Raises:
            ConflictError: the new profile URL belongs to another contact
        """
        request = parse_request(
            FieldUpdateRequest, {"contact_id": contact_id, "source": source, "updates": updates}
        )
        unknown = sorted(set(request.updates) - set(FIELD_COLUMNS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated by name: {', '.join(unknown)}")

        applied: list[str] = []
        conflicts: list[DataConflict] = []
        async with self.contacts.locked(request.contact_id) as conn:
            contact = await self.contacts.get_active(request.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", request.contact_id)

            values: dict[str, Any] = {}
            sources: dict[str, str] = {}
            for field_name, incoming in request.updates.items():
                current = read_field(contact, field_name)
                current_source = contact.field_sources.get(field_name)
                decision = decide_update(current, current_source, incoming, request.source)

                if decision == "apply":
                    values[FIELD_COLUMNS[field_name]] = incoming.strip()
                    sources[field_name] = request.source
                    applied.append(field_name)
                elif decision == "conflict":
                    conflict = await self.conflicts.insert(
                        contact.id,
                        field_name,
                        current,
                        current_source or DEFAULT_FIELD_SOURCE,
                        incoming,
                        request.source,
                        connection=conn,
                    )
                    conflicts.append(conflict)

            try:
                await self.contacts.update_fields(contact.id, values, sources, connection=conn)
            except pg_errors.UniqueViolation as e:
                raise _duplicate_url(values.get("linkedin_url"), request.source) from e

        if conflicts:
            logger.info(
                "Field updates produced conflicts",
                contact_id=contact_id,
                fields=[conflict.field_name for conflict in conflicts],
                source=request.source,
            )
        return {"applied": applied, "conflicts": conflicts}

    async def resolve_conflict(self, conflict_id: str, resolved_value: str | None) -> DataConflict:
        """Write the human-chosen value with ``manual`` provenance and close the conflict."""
        conflict = await self.conflicts.get_open(conflict_id)
        if conflict is None:
            raise NotFoundError("DataConflict", conflict_id)

        async with self.contacts.locked(conflict.contact_id) as conn:
            if await self.conflicts.get_open(conflict_id, connection=conn) is None:
                raise NotFoundError("DataConflict", conflict_id)
            contact = await self.contacts.get_active(conflict.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", conflict.contact_id)

            try:
                await self.contacts.update_fields(
                    contact.id,
                    {FIELD_COLUMNS[conflict.field_name]: resolved_value},
                    {conflict.field_name: "manual"},
                    connection=conn,
                )
            except pg_errors.UniqueViolation as e:
                raise _duplicate_url(resolved_value, "manual") from e
            resolved = await self.conflicts.mark_resolved(
                conflict_id, resolved_value, connection=conn
            )

        logger.info(
            "Data conflict resolved",
            conflict_id=conflict_id,
            contact_id=conflict.contact_id,
            field=conflict.field_name,
        )
        return resolved


contact_service = ContactService()
