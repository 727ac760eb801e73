"""
Outreach template selection and rendering.
"""

import re
from collections.abc import Iterable, Mapping

from network_engine.domain.models import Contact, Template

TOKEN_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

TEMPLATE_TOKENS = (
    "first_name",
    "last_name",
    "company",
    "title",
    "mutual_connection",
    "recent_post",
    "category_context",
    "custom",
)

EXCEEDS_LIMIT_NOTE = "EXCEEDS_300_CHARS: Requires manual editing"


def template_values(contact: Contact, extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Token values for a contact. Tokens without data render empty."""
    values = {token: "" for token in TEMPLATE_TOKENS}
    values.update(
        first_name=contact.first_name or "",
        last_name=contact.last_name or "",
        company=contact.company or "",
        title=contact.title or "",
    )
    if extra:
        values.update({key: value or "" for key, value in extra.items()})
    return values


def render_template(body: str, values: Mapping[str, str]) -> str:
    """Substitute ``{{token}}`` placeholders; unknown tokens become empty strings."""
    return TOKEN_PATTERN.sub(lambda match: values.get(match.group(1), ""), body)


def select_template(templates: Iterable[Template], contact: Contact) -> Template | None:
    """
    Least-used active template for the contact's categories.

    Falls back to the least-used active template of any category. Ties go
    to the lowest id.
    """
    active = [template for template in templates if template.is_active]
    if not active:
        return None

    category_ids = {category.id for category in contact.categories}
    matching = [template for template in active if template.category_id in category_ids]
    pool = matching or active
    return min(pool, key=lambda template: (template.times_used, template.id))


def exceeds_limit(message: str | None, limit: int) -> bool:
    return bool(message) and len(message) > limit
