"""
Duplicate detection service - idempotent scan, auto-merge, human resolution.
"""

from network_engine.domain.models import Contact, DuplicatePair, MergeRecord
from network_engine.domain.types import DEFAULT_FIELD_SOURCE
from network_engine.errors import NotFoundError, ValidationError, batch_error
from network_engine.features.contacts.provenance import FIELD_COLUMNS
from network_engine.features.contacts.repository import ContactRepository
from network_engine.infrastructure.observability.logging import get_logger

from .matching import (
    CandidatePair,
    canonical_pair,
    choose_primary,
    contact_snapshot,
    find_candidate_pairs,
    merge_backfill,
)
from .repository import DuplicateRepository

logger = get_logger(__name__)


class DuplicateService:
    def __init__(self, contacts=ContactRepository, pairs=DuplicateRepository):
        self.contacts = contacts
        self.pairs = pairs

    async def scan(self) -> dict:
        """
        Scan every active contact for duplicates.

        High-confidence pairs are merged immediately; medium and low pairs
        are stored as pending. Pending and dismissed pairs are never
        recreated, so a second scan over unchanged data finds nothing new.

        Returns:
            dict: {"candidates", "auto_merged", "flagged", "skipped", "errors"}
        """
        contacts = await self.contacts.list_active()
        candidates = find_candidate_pairs(contacts)
        existing = await self.pairs.existing_pairs()

        result = {
            "candidates": len(candidates),
            "auto_merged": 0,
            "flagged": 0,
            "skipped": 0,
            "errors": [],
        }
        merged_away: set[str] = set()

        for candidate in candidates:
            if existing.get(candidate.key) in ("pending", "dismissed", "merged"):
                result["skipped"] += 1
                continue
            # Merged away earlier in this scan
            if merged_away.intersection(candidate.key):
                result["skipped"] += 1
                continue

            try:
                if candidate.confidence == "high":
                    merged = await self._merge(
                        candidate.contact_a_id,
                        candidate.contact_b_id,
                        candidate=candidate,
                        merge_type="auto",
                    )
                    if merged is None:
                        result["skipped"] += 1
                        continue
                    merged_away.update(set(candidate.key) - {merged.id})
                    result["auto_merged"] += 1
                else:
                    await self.pairs.upsert_pair(
                        DuplicatePair(
                            contact_a_id=candidate.contact_a_id,
                            contact_b_id=candidate.contact_b_id,
                            match_type=candidate.match_type,
                            confidence=candidate.confidence,
                            status="pending",
                        )
                    )
                    result["flagged"] += 1
            except Exception as e:
                logger.error(
                    "Duplicate pair processing failed",
                    contact_a_id=candidate.contact_a_id,
                    contact_b_id=candidate.contact_b_id,
                    error=str(e),
                )
                result["errors"].append(batch_error(e, pair=list(candidate.key)))

        logger.info(
            "Duplicate scan finished",
            contacts=len(contacts),
            candidates=result["candidates"],
            auto_merged=result["auto_merged"],
            flagged=result["flagged"],
            errors=len(result["errors"]),
        )
        return result

    async def merge_pair(self, pair_id: str, primary_contact_id: str) -> Contact:
        """Human-resolved merge of a pending pair with a chosen primary."""
        pair = await self.pairs.get_pair(pair_id)
        if pair is None or pair.status != "pending":
            raise NotFoundError("DuplicatePair", pair_id)
        if primary_contact_id not in (pair.contact_a_id, pair.contact_b_id):
            raise ValidationError(
                "Primary contact is not part of the pair",
                pair_id=pair_id,
                primary_contact_id=primary_contact_id,
            )

        candidate = CandidatePair(
            pair.contact_a_id, pair.contact_b_id, pair.match_type, pair.confidence
        )
        merged = await self._merge(
            pair.contact_a_id,
            pair.contact_b_id,
            candidate=candidate,
            merge_type="manual",
            primary_id=primary_contact_id,
        )
        if merged is None:
            raise NotFoundError("Contact", f"{pair.contact_a_id}/{pair.contact_b_id}")
        return merged

    async def dismiss_pair(self, pair_id: str) -> None:
        pair = await self.pairs.get_pair(pair_id)
        if pair is None or pair.status != "pending":
            raise NotFoundError("DuplicatePair", pair_id)
        await self.pairs.set_status(pair_id, "dismissed")
        logger.info("Duplicate pair dismissed", pair_id=pair_id)

    async def _merge(
        self,
        first_id: str,
        second_id: str,
        *,
        candidate: CandidatePair,
        merge_type: str,
        primary_id: str | None = None,
    ) -> Contact | None:
        """
        Merge two contacts under both locks. Returns the surviving contact,
        or None when either side is no longer active.
        """
        async with self.contacts.locked(first_id, second_id) as conn:
            first = await self.contacts.get_active(first_id, connection=conn)
            second = await self.contacts.get_active(second_id, connection=conn)
            if first is None or second is None:
                return None

            if primary_id is None:
                primary, secondary = choose_primary(first, second)
            elif primary_id == first.id:
                primary, secondary = first, second
            else:
                primary, secondary = second, first

            updates = merge_backfill(primary, secondary)
            score = updates.pop("relationship_score", None)
            sources = {
                field_name: secondary.field_sources.get(field_name, DEFAULT_FIELD_SOURCE)
                for field_name in updates
                if field_name in FIELD_COLUMNS
            }
            # Secondary first: the profile URL index only covers active rows
            await self.contacts.soft_delete(secondary.id, connection=conn)
            await self.contacts.update_fields(primary.id, updates, sources, connection=conn)
            if score is not None:
                await self.contacts.update_relationship_score(primary.id, score, connection=conn)
            await self.pairs.insert_merge_history(
                MergeRecord(
                    primary_contact_id=primary.id,
                    merged_contact_id=secondary.id,
                    merged_contact_data=contact_snapshot(secondary),
                    merge_type=merge_type,
                ),
                connection=conn,
            )

            contact_a_id, contact_b_id = canonical_pair(first.id, second.id)
            await self.pairs.upsert_pair(
                DuplicatePair(
                    contact_a_id=contact_a_id,
                    contact_b_id=contact_b_id,
                    match_type=candidate.match_type,
                    confidence=candidate.confidence,
                    status="merged",
                ),
                connection=conn,
            )
            merged = await self.contacts.get_active(primary.id, connection=conn)

        logger.info(
            "Contacts merged",
            primary_contact_id=primary.id,
            merged_contact_id=secondary.id,
            merge_type=merge_type,
            match_type=candidate.match_type,
            backfilled=sorted(updates),
        )
        return merged


duplicate_service = DuplicateService()
