"""
Field provenance rules.

Each tracked field records the channel that last set it. An incoming value
from a lower-ranked channel never silently replaces a value from a higher
one; it becomes a DataConflict for a human to resolve.
"""

from typing import Literal

from network_engine.domain.models import Contact
from network_engine.domain.types import DEFAULT_FIELD_SOURCE, SOURCE_RANK

UpdateDecision = Literal["apply", "conflict", "skip"]

# Field name -> contacts column. The only fields updatable by name.
FIELD_COLUMNS: dict[str, str] = {
    "first_name": "first_name",
    "last_name": "last_name",
    "title": "title",
    "company": "company",
    "location": "location",
    "headline": "headline",
    "linkedin_url": "linkedin_url",
    "email": "email",
    "phone": "phone",
    "notes": "notes",
    "introduction_source": "introduction_source",
}

FIELD_READERS = {
    "first_name": lambda contact: contact.first_name,
    "last_name": lambda contact: contact.last_name,
    "title": lambda contact: contact.title,
    "company": lambda contact: contact.company,
    "location": lambda contact: contact.location,
    "headline": lambda contact: contact.headline,
    "linkedin_url": lambda contact: contact.linkedin_url,
    "email": lambda contact: contact.email,
    "phone": lambda contact: contact.phone,
    "notes": lambda contact: contact.notes,
    "introduction_source": lambda contact: contact.introduction_source,
}


def read_field(contact: Contact, field_name: str) -> str | None:
    return FIELD_READERS[field_name](contact)


def source_rank(source: str | None) -> int:
    return SOURCE_RANK[source or DEFAULT_FIELD_SOURCE]


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _same(left: str, right: str) -> bool:
    return str(left).strip().casefold() == str(right).strip().casefold()


def decide_update(
    current_value: str | None,
    current_source: str | None,
    incoming_value: str | None,
    incoming_source: str,
) -> UpdateDecision:
    """
    Decide what an incoming value does to a field.

    - blank incoming: skip
    - blank current: apply
    - same value ignoring case and whitespace: skip
    - incoming ranks below current: conflict
    - otherwise: apply
    """
    if _blank(incoming_value):
        return "skip"
    if _blank(current_value):
        return "apply"
    if _same(current_value, incoming_value):
        return "skip"
    if source_rank(incoming_source) < source_rank(current_source):
        return "conflict"
    return "apply"
