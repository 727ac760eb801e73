"""
Persona category assignment from an external classifier.

The classifier is a collaborator: it receives contacts in batches and
returns one ``{contact_id, category, confidence}`` per contact. This
service owns the persona catalogue and the category bookkeeping.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from network_engine.domain.models import Contact
from network_engine.domain.requests import ClassificationResult, parse_request
from network_engine.errors import NotFoundError, ValidationError, batch_error
from network_engine.features.contacts.repository import ContactRepository
from network_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

PERSONA_CATEGORIES: dict[str, int] = {
    "Regulator/Policy": 9,
    "Potential Employer": 9,
    "Venture Capital": 8,
    "C-Suite/Founder": 7,
    "General Industry": 6,
    "Crypto Compliance": 5,
    "Operator/CoS": 5,
    "MBA Network": 5,
}
NEEDS_REVIEW = ("Needs Review", 2)
UNCATEGORIZED = "Uncategorized"
CLASSIFY_BATCH_SIZE = 20


class ContactClassifier(Protocol):
    async def classify(
        self, contacts: Sequence[Contact]
    ) -> list[ClassificationResult | dict[str, Any]]: ...


def _is_legacy(contact: Contact) -> bool:
    return any("legacy" in category.name.lower() for category in contact.categories)


def _has_persona(contact: Contact) -> bool:
    return any(category.name in PERSONA_CATEGORIES for category in contact.categories)


def _result_contact_id(raw: Any) -> str | None:
    if isinstance(raw, dict):
        return raw.get("contact_id")
    return getattr(raw, "contact_id", None)


class CategorizationService:
    def __init__(self, contacts=ContactRepository):
        self.contacts = contacts

    async def apply_classification(
        self, contact_id: str, category: str, confidence: str = "medium"
    ) -> dict[str, Any]:
        """
        Assign a persona category to one contact.

        Low confidence also tags the contact ``Needs Review``; any
        ``Uncategorized`` tag is removed.

        Raises:
            ValidationError: unknown persona or confidence
            NotFoundError: contact missing or soft-deleted
        """
        result = parse_request(
            ClassificationResult,
            {"contact_id": contact_id, "category": category, "confidence": confidence},
        )
        if result.category not in PERSONA_CATEGORIES:
            raise ValidationError(f"Unknown persona category '{result.category}'")

        flagged = result.confidence == "low"
        async with self.contacts.locked(result.contact_id) as conn:
            contact = await self.contacts.get_active(result.contact_id, connection=conn)
            if contact is None:
                raise NotFoundError("Contact", result.contact_id)

            persona = await self.contacts.ensure_category(
                result.category, PERSONA_CATEGORIES[result.category], connection=conn
            )
            await self.contacts.assign_category(contact.id, persona.id, connection=conn)
            if flagged:
                review = await self.contacts.ensure_category(*NEEDS_REVIEW, connection=conn)
                await self.contacts.assign_category(contact.id, review.id, connection=conn)
            await self.contacts.remove_category(contact.id, UNCATEGORIZED, connection=conn)

        logger.debug(
            "Contact categorized",
            contact_id=result.contact_id,
            category=result.category,
            confidence=result.confidence,
        )
        return {
            "contact_id": result.contact_id,
            "category": result.category,
            "confidence": result.confidence,
            "flagged_for_review": flagged,
        }

    async def categorize_contacts(
        self,
        classifier: ContactClassifier,
        contact_ids: Sequence[str] | None = None,
        force: bool = False,
    ) -> dict[str, Any]:
        """
        Classify contacts in batches and apply the results.

        Legacy contacts are always skipped; contacts that already hold a
        persona category are skipped unless ``force``. A batch the
        classifier fails on counts all its contacts as errors and the run
        continues.

        Returns:
            dict: {"total", "categorized", "flagged_for_review", "skipped", "errors"}
        """
        if contact_ids:
            contacts = await self.contacts.get_many_active(contact_ids)
        else:
            contacts = await self.contacts.list_active()

        summary: dict[str, Any] = {
            "total": len(contacts),
            "categorized": 0,
            "flagged_for_review": 0,
            "skipped": 0,
            "errors": [],
        }

        eligible = []
        for contact in contacts:
            if _is_legacy(contact) or (not force and _has_persona(contact)):
                summary["skipped"] += 1
            else:
                eligible.append(contact)

        for start in range(0, len(eligible), CLASSIFY_BATCH_SIZE):
            batch = eligible[start : start + CLASSIFY_BATCH_SIZE]
            batch_ids = {contact.id for contact in batch}
            try:
                results = await classifier.classify(batch)
            except Exception as e:
                logger.error("Classifier batch failed", batch_start=start, error=str(e))
                summary["errors"].extend(
                    batch_error(e, contact_id=contact.id) for contact in batch
                )
                continue

            answered: set[str] = set()
            for raw in results:
                try:
                    result = parse_request(ClassificationResult, raw)
                    if result.contact_id not in batch_ids or result.contact_id in answered:
                        continue
                    answered.add(result.contact_id)
                    applied = await self.apply_classification(
                        result.contact_id, result.category, result.confidence
                    )
                except Exception as e:
                    contact_id = _result_contact_id(raw)
                    if contact_id in batch_ids:
                        answered.add(contact_id)
                    logger.error(
                        "Applying classification failed", contact_id=contact_id, error=str(e)
                    )
                    summary["errors"].append(batch_error(e, contact_id=contact_id))
                    continue

                summary["categorized"] += 1
                if applied["flagged_for_review"]:
                    summary["flagged_for_review"] += 1

            for contact_id in sorted(batch_ids - answered):
                summary["errors"].append(
                    {
                        "contact_id": contact_id,
                        "error": "No classification returned",
                        "error_type": "MissingResult",
                    }
                )

        logger.info(
            "Categorization finished",
            total=summary["total"],
            categorized=summary["categorized"],
            flagged_for_review=summary["flagged_for_review"],
            skipped=summary["skipped"],
            errors=len(summary["errors"]),
        )
        return summary


categorization_service = CategorizationService()
