"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class ErrorBody(BaseModel):
    """Stable error payload rendered for every domain error."""

    code: str = Field(..., description="Stable machine-readable error code.")
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorBody


class Attribution(BaseModel):
    """Referrer and campaign attribution attached to funnel events."""

    referrer: str | None = Field(None, max_length=2048)
    utm_source: str | None = Field(None, max_length=255)
    utm_medium: str | None = Field(None, max_length=255)
    utm_campaign: str | None = Field(None, max_length=255)
    country: str | None = Field(None, description="ISO 3166-1 alpha-2 country code")

    @field_validator("country")
    @classmethod
    def _normalize_country(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().upper()
        if len(value) != 2 or not value.isalpha():
            raise ValueError("country must be a 2-letter ISO code")
        return value
