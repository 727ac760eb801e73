import pytest

from network_engine.domain.models import Contact
from network_engine.errors import NotFoundError, ValidationError
from network_engine.features.duplicates.matching import (
    choose_primary,
    find_candidate_pairs,
    is_fuzzy_name_match,
    levenshtein,
    normalize_phone,
    normalize_profile_url,
)


def _contact(contact_id, first_name="Jane", last_name="Doe", **fields):
    return Contact(id=contact_id, first_name=first_name, last_name=last_name, **fields)


def test_profile_urls_normalize_to_same_path():
    assert normalize_profile_url("https://www.linkedin.com/in/Jane-Doe/") == "/in/jane-doe"
    assert normalize_profile_url("http://linkedin.com/in/jane-doe") == "/in/jane-doe"
    assert normalize_profile_url("  ") is None


def test_short_phone_numbers_ignored():
    assert normalize_phone("+1 (555) 010-9999") == "15550109999"
    assert normalize_phone("12-34") is None


def test_pairs_are_canonically_ordered():
    pairs = find_candidate_pairs(
        [
            _contact("contact-b", email="jane@example.com"),
            _contact("contact-a", first_name="J.", email="JANE@example.com "),
        ]
    )

    assert [(p.contact_a_id, p.contact_b_id, p.match_type, p.confidence) for p in pairs] == [
        ("contact-a", "contact-b", "email", "high")
    ]


def test_pair_reported_once_with_strongest_signal():
    pairs = find_candidate_pairs(
        [
            _contact("c1", company="Acme", email="jane@example.com"),
            _contact("c2", company="Acme", email="jane@example.com"),
        ]
    )

    assert len(pairs) == 1
    assert pairs[0].match_type == "email"


def test_exact_name_and_company_is_medium():
    pairs = find_candidate_pairs(
        [_contact("c1", company="Acme"), _contact("c2", company=" acme ")]
    )

    assert [(p.match_type, p.confidence) for p in pairs] == [("name_company", "medium")]


def test_fuzzy_first_names():
    jon = _contact("c1", first_name="Jon", company="Acme")
    jonathan = _contact("c2", first_name="Jonathan", company="Acme")
    michael = _contact("c3", first_name="Michael", company="Acme")
    micheal = _contact("c4", first_name="Micheal", company="Acme")
    bob = _contact("c5", first_name="Bob", company="Acme")

    assert is_fuzzy_name_match(jon, jonathan)
    assert is_fuzzy_name_match(michael, micheal)
    assert not is_fuzzy_name_match(jon, bob)
    assert not is_fuzzy_name_match(jon, _contact("c6", first_name="Jonathan", company="Other"))
    assert levenshtein("micheal", "michael") == 2


def test_more_complete_contact_is_primary():
    sparse = _contact("c1", linkedin_url="/in/jane")
    rich = _contact("c2", linkedin_url="/in/jane", email="jane@example.com", title="CFO")

    assert choose_primary(sparse, rich) == (rich, sparse)
    assert choose_primary(rich, sparse) == (rich, sparse)


@pytest.mark.asyncio
async def test_url_match_auto_merges(engine):
    engine.contacts.add(
        id="contact-b",
        first_name="Jane",
        linkedin_url="https://www.linkedin.com/in/jane-doe/",
        email="jane@example.com",
        title="CFO",
        company="Acme",
        relationship_score=10,
    )
    engine.contacts.add(
        id="contact-a",
        first_name="Janie",
        linkedin_url="http://linkedin.com/in/Jane-Doe",
        phone="555-010-9999",
        relationship_score=40,
    )

    result = await engine.duplicates.scan()

    assert result["auto_merged"] == 1
    assert result["errors"] == []
    primary = engine.contacts.rows["contact-b"]
    secondary = engine.contacts.rows["contact-a"]
    assert primary.deleted_at is None
    assert secondary.deleted_at is not None
    assert primary.phone == "555-010-9999"
    assert primary.relationship_score == 40

    [merge] = engine.pairs.merges
    assert merge.primary_contact_id == "contact-b"
    assert merge.merged_contact_id == "contact-a"
    assert merge.merge_type == "auto"
    assert merge.merged_contact_data["first_name"] == "Janie"

    pair = engine.pairs.pairs[("contact-a", "contact-b")]
    assert pair.status == "merged"
    assert not [p for p in engine.pairs.pairs.values() if p.status == "pending"]


@pytest.mark.asyncio
async def test_second_scan_creates_no_new_pairs(engine):
    engine.contacts.add(first_name="Jane", company="Acme")
    engine.contacts.add(first_name="Jane", company="Acme")
    engine.contacts.add(first_name="Jon", last_name="Roe", company="Initech")
    engine.contacts.add(first_name="Jonathan", last_name="Roe", company="Initech")

    first = await engine.duplicates.scan()
    second = await engine.duplicates.scan()

    assert first["flagged"] == 2
    assert second["flagged"] == 0
    assert second["skipped"] == 2
    assert len(engine.pairs.pairs) == 2
    assert {p.confidence for p in engine.pairs.pairs.values()} == {"medium", "low"}


@pytest.mark.asyncio
async def test_merge_pair_with_chosen_primary(engine):
    sparse = engine.contacts.add(first_name="Jane", company="Acme")
    rich = engine.contacts.add(first_name="Jane", company="Acme", email="jane@example.com")
    await engine.duplicates.scan()
    [pair] = engine.pairs.pairs.values()

    merged = await engine.duplicates.merge_pair(pair.id, sparse.id)

    assert merged.id == sparse.id
    assert merged.email == "jane@example.com"
    assert engine.contacts.rows[rich.id].deleted_at is not None
    assert engine.pairs.merges[0].merge_type == "manual"
    assert engine.pairs.pairs[pair.contact_a_id, pair.contact_b_id].status == "merged"

    with pytest.raises(NotFoundError):
        await engine.duplicates.merge_pair(pair.id, sparse.id)


@pytest.mark.asyncio
async def test_merge_pair_rejects_outside_primary(engine):
    engine.contacts.add(first_name="Jane", company="Acme")
    engine.contacts.add(first_name="Jane", company="Acme")
    await engine.duplicates.scan()
    [pair] = engine.pairs.pairs.values()

    with pytest.raises(ValidationError):
        await engine.duplicates.merge_pair(pair.id, "someone-else")


@pytest.mark.asyncio
async def test_dismissed_pair_stays_dismissed(engine):
    engine.contacts.add(first_name="Jane", company="Acme")
    engine.contacts.add(first_name="Jane", company="Acme")
    await engine.duplicates.scan()
    [pair] = engine.pairs.pairs.values()

    await engine.duplicates.dismiss_pair(pair.id)
    rescan = await engine.duplicates.scan()

    assert rescan["flagged"] == 0
    assert rescan["skipped"] == 1
    assert engine.pairs.pairs[pair.contact_a_id, pair.contact_b_id].status == "dismissed"


@pytest.mark.asyncio
async def test_scan_skips_pairs_with_contact_merged_in_same_scan(engine):
    engine.contacts.add(
        id="contact-a",
        first_name="Jane",
        company="Acme",
        linkedin_url="https://www.linkedin.com/in/jane-doe",
        email="jane@example.com",
        title="CFO",
    )
    engine.contacts.add(
        id="contact-b",
        first_name="Jane",
        company="Acme",
        linkedin_url="https://linkedin.com/in/jane-doe/",
    )
    engine.contacts.add(id="contact-c", first_name="Jane", company="Acme")

    result = await engine.duplicates.scan()

    assert result["auto_merged"] == 1
    assert result["flagged"] == 1
    assert result["skipped"] == 1
    assert engine.contacts.rows["contact-b"].deleted_at is not None
    pending = [key for key, pair in engine.pairs.pairs.items() if pair.status == "pending"]
    assert pending == [("contact-a", "contact-c")]

    [pair] = [engine.pairs.pairs[key] for key in pending]
    merged = await engine.duplicates.merge_pair(pair.id, "contact-a")
    assert merged.id == "contact-a"
