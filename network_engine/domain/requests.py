"""
Validated inputs for engine operations.

Pydantic validation errors are converted to ``ValidationError`` by
``parse_request`` so callers only ever see the engine taxonomy.
"""

from datetime import UTC, date, datetime
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, Field, field_validator

from network_engine.domain.types import (
    INTERACTION_TYPES,
    ContactStatus,
    FieldSource,
    InteractionSource,
    Seniority,
)
from network_engine.errors import ValidationError

RequestT = TypeVar("RequestT", bound=BaseModel)


def parse_request(model: type[RequestT], data: RequestT | dict[str, Any]) -> RequestT:
    """Validate ``data`` into ``model``; raises ``ValidationError`` on bad input."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            errors=e.errors(include_url=False),
        ) from e


class InteractionCreate(BaseModel):
    """Log one interaction against a contact."""

    contact_id: str = Field(..., min_length=1)
    type: str
    source: InteractionSource = "manual"
    occurred_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        if value not in INTERACTION_TYPES:
            raise ValueError(f"unknown interaction type '{value}'")
        return value

    @field_validator("occurred_at")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class ContactCreate(BaseModel):
    """New contact, manually entered or imported."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field("", max_length=100)
    status: ContactStatus = "target"
    title: str | None = None
    company: str | None = None
    location: str | None = None
    headline: str | None = None
    linkedin_url: str | None = None
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    introduction_source: str | None = None
    seniority: Seniority | None = None
    mutual_connections_count: int = Field(0, ge=0)
    is_active_on_profile: bool = False
    has_open_to_connect: bool = False


class StatusChangeRequest(BaseModel):
    contact_id: str = Field(..., min_length=1)
    status: ContactStatus
    reason: str | None = Field(None, max_length=500)


class FieldUpdateRequest(BaseModel):
    """Incoming values for provenance-tracked contact fields."""

    contact_id: str = Field(..., min_length=1)
    source: FieldSource
    updates: dict[str, str | None]


class SnoozeRequest(BaseModel):
    item_id: str = Field(..., min_length=1)
    snooze_until: date

    @field_validator("snooze_until", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            raise ValueError("snooze_until must be a calendar date")
        return value


class ClassificationResult(BaseModel):
    """Output of the external contact classifier."""

    contact_id: str
    category: str = Field(..., min_length=1)
    confidence: str = "medium"

    @field_validator("confidence")
    @classmethod
    def _known_confidence(cls, value: str) -> str:
        value = value.lower()
        if value not in {"high", "medium", "low"}:
            raise ValueError(f"unknown confidence '{value}'")
        return value


class SendOutcome(BaseModel):
    """What the execution collaborator reports for one send attempt."""

    success: bool
    message: str | None = None
    error: str | None = None
