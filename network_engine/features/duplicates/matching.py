"""
Duplicate matching over normalized identity signals.

Pure functions: build indexes over active contacts, emit canonically
ordered candidate pairs, and compute the field backfill for a merge.
"""

import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from network_engine.domain.models import Contact

_PROFILE_PREFIX = re.compile(r"^https?://(www\.)?linkedin\.com")
_NON_DIGITS = re.compile(r"\D")
MIN_PHONE_DIGITS = 7
FUZZY_MIN_LENGTH = 4
FUZZY_MAX_DISTANCE = 2

# Populated-field count decides which record survives a merge
COMPLETENESS_FIELDS = (
    "title",
    "company",
    "linkedin_url",
    "email",
    "phone",
    "location",
    "headline",
    "seniority",
    "notes",
)
MERGEABLE_FIELDS = COMPLETENESS_FIELDS + ("introduction_source",)

# Exact-signal indexes and the confidence a shared bucket implies
INDEX_CONFIDENCE = {
    "linkedin_url": "high",
    "email": "high",
    "phone": "high",
    "name_company": "medium",
}


@dataclass(slots=True)
class CandidatePair:
    contact_a_id: str
    contact_b_id: str
    match_type: str
    confidence: str

    @property
    def key(self) -> tuple[str, str]:
        return self.contact_a_id, self.contact_b_id


def canonical_pair(first_id: str, second_id: str) -> tuple[str, str]:
    return (first_id, second_id) if first_id < second_id else (second_id, first_id)


def normalize_profile_url(url: str | None) -> str | None:
    if not url or not url.strip():
        return None
    normalized = _PROFILE_PREFIX.sub("", url.strip().lower())
    return normalized.rstrip("/") or None


def normalize_email(email: str | None) -> str | None:
    if not email or not email.strip():
        return None
    return email.strip().lower()


def normalize_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    digits = _NON_DIGITS.sub("", phone)
    return digits if len(digits) >= MIN_PHONE_DIGITS else None


def name_company_key(contact: Contact) -> str | None:
    if not contact.company or not contact.company.strip():
        return None
    return "|".join(
        part.strip().lower() for part in (contact.first_name, contact.last_name, contact.company)
    )


def levenshtein(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)

    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def is_fuzzy_name_match(first: Contact, second: Contact) -> bool:
    """Same last name and company; first names are a prefix pair or within edit distance 2."""
    if not first.company or not second.company:
        return False
    if first.company.strip().lower() != second.company.strip().lower():
        return False
    if first.last_name.strip().lower() != second.last_name.strip().lower():
        return False

    name_a = first.first_name.strip().lower()
    name_b = second.first_name.strip().lower()
    if not name_a or not name_b or name_a == name_b:
        return False
    if name_a.startswith(name_b) or name_b.startswith(name_a):
        return True
    return (
        len(name_a) >= FUZZY_MIN_LENGTH
        and len(name_b) >= FUZZY_MIN_LENGTH
        and levenshtein(name_a, name_b) <= FUZZY_MAX_DISTANCE
    )


def build_indexes(contacts: Iterable[Contact]) -> dict[str, dict[str, list[Contact]]]:
    indexes: dict[str, dict[str, list[Contact]]] = {
        match_type: defaultdict(list) for match_type in INDEX_CONFIDENCE
    }
    for contact in contacts:
        keys = {
            "linkedin_url": normalize_profile_url(contact.linkedin_url),
            "email": normalize_email(contact.email),
            "phone": normalize_phone(contact.phone),
            "name_company": name_company_key(contact),
        }
        for match_type, key in keys.items():
            if key:
                indexes[match_type][key].append(contact)
    return indexes


def find_candidate_pairs(contacts: Sequence[Contact]) -> list[CandidatePair]:
    """
    All candidate pairs, strongest signal first, each pair reported once.

    Exact indexes are walked in confidence order, so a pair matched by URL
    is never re-reported as a weaker name match.
    """
    indexes = build_indexes(contacts)
    seen: set[tuple[str, str]] = set()
    pairs: list[CandidatePair] = []

    for match_type, confidence in INDEX_CONFIDENCE.items():
        for bucket in indexes[match_type].values():
            if len(bucket) < 2:
                continue
            for i, first in enumerate(bucket):
                for second in bucket[i + 1 :]:
                    if first.id == second.id:
                        continue
                    key = canonical_pair(first.id, second.id)
                    if key in seen:
                        continue
                    seen.add(key)
                    pairs.append(CandidatePair(key[0], key[1], match_type, confidence))

    exact_name_buckets = indexes["name_company"]
    by_last_and_company: dict[str, list[Contact]] = defaultdict(list)
    for contact in contacts:
        if contact.company and contact.company.strip():
            group = f"{contact.last_name.strip().lower()}|{contact.company.strip().lower()}"
            by_last_and_company[group].append(contact)

    for group in by_last_and_company.values():
        for i, first in enumerate(group):
            for second in group[i + 1 :]:
                key = canonical_pair(first.id, second.id)
                if key in seen or not is_fuzzy_name_match(first, second):
                    continue
                # An exact name+company bucket already covers these people
                if _in_shared_exact_bucket(first, exact_name_buckets) or _in_shared_exact_bucket(
                    second, exact_name_buckets
                ):
                    continue
                seen.add(key)
                pairs.append(CandidatePair(key[0], key[1], "fuzzy_name_company", "low"))

    return pairs


def _in_shared_exact_bucket(contact: Contact, buckets: dict[str, list[Contact]]) -> bool:
    key = name_company_key(contact)
    return bool(key) and len(buckets.get(key, [])) > 1


def completeness(contact: Contact) -> int:
    return sum(1 for field_name in COMPLETENESS_FIELDS if _populated(getattr(contact, field_name)))


def choose_primary(first: Contact, second: Contact) -> tuple[Contact, Contact]:
    """(primary, secondary); ties go to ``first``."""
    if completeness(second) > completeness(first):
        return second, first
    return first, second


def merge_backfill(primary: Contact, secondary: Contact) -> dict[str, Any]:
    """Column values the primary should take from the secondary."""
    updates: dict[str, Any] = {
        field_name: getattr(secondary, field_name)
        for field_name in MERGEABLE_FIELDS
        if not _populated(getattr(primary, field_name))
        and _populated(getattr(secondary, field_name))
    }
    if secondary.relationship_score > primary.relationship_score:
        updates["relationship_score"] = secondary.relationship_score
    return updates


def contact_snapshot(contact: Contact) -> dict[str, Any]:
    """JSON-safe copy of a contact for merge history."""
    snapshot: dict[str, Any] = {}
    for field_name in Contact.__dataclass_fields__:
        value = getattr(contact, field_name)
        if field_name == "categories":
            value = [category.name for category in value]
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        snapshot[field_name] = value
    return snapshot


def _populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True
