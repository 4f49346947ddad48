"""Pydantic schemas for event registration endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.registration import RegistrationStatus

MAX_SPECIAL_REQUIREMENTS_LENGTH = 2000


def _validate_special_requirements(v: str | None) -> str | None:
    if v is not None and len(v) > MAX_SPECIAL_REQUIREMENTS_LENGTH:
        raise ValueError(
            f"special_requirements exceeds {MAX_SPECIAL_REQUIREMENTS_LENGTH} characters",
        )
    return v


class RegistrationDetails(BaseModel):
    """Optional attendee details captured with a registration."""

    car_details: dict[str, Any] | None = None
    special_requirements: str | None = None
    emergency_contact: dict[str, Any] | None = None

    @field_validator("special_requirements")
    @classmethod
    def validate_special_requirements(cls, v: str | None) -> str | None:
        """Validate special_requirements length."""
        return _validate_special_requirements(v)


class RegistrationCreate(RegistrationDetails):
    """Schema for registering the authenticated caller for an event."""

    event_id: UUID


class RegistrationStatusUpdate(BaseModel):
    """Schema for changing a registration's status (and optionally its details)."""

    # Validated by the service so unknown values map to invalid_status (400)
    status: str = Field(min_length=1, max_length=20)
    car_details: dict[str, Any] | None = None
    special_requirements: str | None = None

    @field_validator("special_requirements")
    @classmethod
    def validate_special_requirements(cls, v: str | None) -> str | None:
        """Validate special_requirements length."""
        return _validate_special_requirements(v)


class RegistrationResponse(BaseModel):
    """Schema for a single registration."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    user_id: UUID
    status: RegistrationStatus
    car_details: dict[str, Any] | None
    special_requirements: str | None
    emergency_contact: dict[str, Any] | None
    registration_date: datetime
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RegistrationListResponse(BaseModel):
    """Paginated registrations, newest first."""

    items: list[RegistrationResponse]
    total: int
    offset: int
    limit: int = Field(ge=1)
    has_more: bool
