"""Consent ledger schemas.

Metadata is a tagged union keyed by ``action`` so each consent event carries
the fields that make sense for it. Anything else goes into ``extensions``,
a small bounded map of scalar values kept for forward compatibility.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from backstage_gate.models.consent import ConsentAction, ConsentSource

MAX_CONTACT_ID_LENGTH = 320
MAX_EXTENSION_FIELDS = 20
MAX_EXTENSION_KEY_LENGTH = 64
MAX_EXTENSION_STRING_LENGTH = 512

ExtensionValue = str | int | float | bool | None


class _MetadataBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    extensions: dict[str, ExtensionValue] = Field(default_factory=dict)

    @field_validator("extensions")
    @classmethod
    def _bound_extensions(cls, value: dict[str, ExtensionValue]) -> dict[str, ExtensionValue]:
        if len(value) > MAX_EXTENSION_FIELDS:
            raise ValueError(f"at most {MAX_EXTENSION_FIELDS} extension fields are allowed")
        for key, item in value.items():
            if not key or len(key) > MAX_EXTENSION_KEY_LENGTH:
                raise ValueError(f"extension keys must be 1-{MAX_EXTENSION_KEY_LENGTH} characters")
            if isinstance(item, str) and len(item) > MAX_EXTENSION_STRING_LENGTH:
                raise ValueError(
                    f"extension '{key}' exceeds {MAX_EXTENSION_STRING_LENGTH} characters"
                )
        return value


class SubscribeMetadata(_MetadataBase):
    action: Literal[ConsentAction.SUBSCRIBE] = ConsentAction.SUBSCRIBE
    gate_slug: str | None = None
    gate_title: str | None = None
    artist_name: str | None = None
    accepted_brands: dict[str, bool] = Field(default_factory=dict)


class DeclineMetadata(_MetadataBase):
    action: Literal[ConsentAction.DECLINE] = ConsentAction.DECLINE
    gate_slug: str | None = None
    accepted_brands: dict[str, bool] = Field(default_factory=dict)


class UnsubscribeMetadata(_MetadataBase):
    action: Literal[ConsentAction.UNSUBSCRIBE] = ConsentAction.UNSUBSCRIBE
    reason: str | None = Field(None, max_length=1000)
    campaign_id: str | None = None


class ResubscribeMetadata(_MetadataBase):
    action: Literal[ConsentAction.RESUBSCRIBE] = ConsentAction.RESUBSCRIBE


class BounceMetadata(_MetadataBase):
    action: Literal[ConsentAction.BOUNCE] = ConsentAction.BOUNCE
    bounce_type: Literal["hard", "soft"]
    reason: str | None = Field(None, max_length=1000)


class SpamComplaintMetadata(_MetadataBase):
    action: Literal[ConsentAction.SPAM_COMPLAINT] = ConsentAction.SPAM_COMPLAINT
    campaign_id: str | None = None


class DeleteRequestMetadata(_MetadataBase):
    action: Literal[ConsentAction.DELETE_REQUEST] = ConsentAction.DELETE_REQUEST
    reason: str | None = Field(None, max_length=1000)


ConsentMetadata = Annotated[
    Union[
        SubscribeMetadata,
        DeclineMetadata,
        UnsubscribeMetadata,
        ResubscribeMetadata,
        BounceMetadata,
        SpamComplaintMetadata,
        DeleteRequestMetadata,
    ],
    Field(discriminator="action"),
]

consent_metadata_adapter: TypeAdapter[Any] = TypeAdapter(ConsentMetadata)


def parse_metadata(action: ConsentAction, raw: dict[str, Any] | None) -> BaseModel:
    """Validate ``raw`` metadata against the variant selected by ``action``."""
    payload = dict(raw or {})
    payload["action"] = action
    return consent_metadata_adapter.validate_python(payload)


class ConsentEntry(BaseModel):
    """A consent event about to be appended to the ledger."""

    contact_id: str = Field(..., min_length=1, max_length=MAX_CONTACT_ID_LENGTH)
    action: ConsentAction
    source: ConsentSource
    timestamp: datetime | None = None
    ip_address: str | None = Field(None, max_length=45)
    user_agent: str | None = None
    metadata: dict[str, Any] | None = None


class ConsentEventCreate(BaseModel):
    """Owner/API request body for recording a consent event."""

    action: ConsentAction
    source: ConsentSource = ConsentSource.API_REQUEST
    metadata: dict[str, Any] | None = None


class ConsentEventResponse(BaseModel):
    id: int
    contact_id: str
    action: ConsentAction
    source: ConsentSource
    timestamp: datetime
    ip_address: str | None
    user_agent: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias="metadata_")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ConsentTimelineResponse(BaseModel):
    contact_id: str
    subscribed: bool | None
    events: list[ConsentEventResponse]
