"""Funnel analytics report schema."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class FunnelCounts(BaseModel):
    views: int = 0
    submissions: int = 0
    step_verifications: dict[str, int] = Field(default_factory=dict)
    downloads: int = 0
    unique_sessions: int = 0


class FunnelRatios(BaseModel):
    """Conversion percentages rounded to two decimals; 0.0 when the base is empty."""

    view_to_submit: float = 0.0
    submit_to_download: float = 0.0
    view_to_download: float = 0.0
    submit_to_step: dict[str, float] = Field(default_factory=dict)


class FunnelReport(BaseModel):
    gate_id: int
    since: datetime | None = None
    until: datetime | None = None
    counts: FunnelCounts
    ratios: FunnelRatios
    views_by_source: dict[str, int] = Field(default_factory=dict)
