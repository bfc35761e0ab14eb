"""Gate-related Pydantic schemas."""
from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backstage_gate.models.gate import GateStep, ordered_steps

from .common import Attribution

SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{1,62})[a-z0-9]$")


class GateCreate(BaseModel):
    """Validated gate configuration; email is always part of the required steps."""

    slug: str = Field(..., min_length=3, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    artist_name: str | None = Field(None, max_length=255)
    file_reference: str = Field(..., min_length=1, max_length=2048)
    required_steps: list[GateStep] = Field(default_factory=list)
    active: bool = True
    expires_at: datetime | None = None
    max_downloads: int | None = Field(None, ge=1)

    @field_validator("slug")
    @classmethod
    def _validate_slug(cls, value: str) -> str:
        value = value.strip().lower()
        if not SLUG_PATTERN.match(value):
            raise ValueError("slug may only contain lowercase letters, digits and hyphens")
        return value

    @field_validator("title", "file_reference")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("required_steps")
    @classmethod
    def _include_email(cls, value: list[GateStep]) -> list[GateStep]:
        return ordered_steps(set(value) | {GateStep.EMAIL})


class GateUpdate(BaseModel):
    """Partial owner update; only fields present in the request are applied.

    Sending ``null`` for ``expires_at`` or ``max_downloads`` removes the limit.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    artist_name: str | None = Field(None, max_length=255)
    active: bool | None = None
    expires_at: datetime | None = None
    max_downloads: int | None = Field(None, ge=1)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _required_fields_not_null(self) -> GateUpdate:
        for name in ("title", "active"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class GatePublic(BaseModel):
    """Public view of a gate shown to visitors."""

    slug: str
    title: str
    artist_name: str | None
    required_steps: list[GateStep]
    submittable: bool


class GateOwnerView(BaseModel):
    """Owner-facing gate details."""

    id: int
    owner_id: int
    slug: str
    title: str
    artist_name: str | None
    file_reference: str
    required_steps: list[GateStep]
    active: bool
    expires_at: datetime | None
    max_downloads: int | None
    downloads_issued: int

    model_config = ConfigDict(from_attributes=True)


class GateViewQuery(Attribution):
    """Query parameters accepted when a visitor opens a gate page."""

    session_id: str | None = Field(None, max_length=255)
