"""Data access helpers for funnel analytics events."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from backstage_gate.models.analytics import FunnelEvent, FunnelEventType

__all__ = ["AnalyticsRepository"]


class AnalyticsRepository:
    """Insert funnel events and compute aggregates over them."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, event: FunnelEvent) -> FunnelEvent:
        self.session.add(event)
        self.session.flush()
        return event

    @staticmethod
    def _window(
        stmt: Select, gate_id: int, since: datetime | None, until: datetime | None
    ) -> Select:
        stmt = stmt.where(FunnelEvent.gate_id == gate_id)
        if since is not None:
            stmt = stmt.where(FunnelEvent.created_at >= since)
        if until is not None:
            stmt = stmt.where(FunnelEvent.created_at < until)
        return stmt

    def counts_by_type(
        self, gate_id: int, since: datetime | None = None, until: datetime | None = None
    ) -> dict[str, int]:
        stmt = self._window(
            select(FunnelEvent.event_type, func.count(FunnelEvent.id)), gate_id, since, until
        ).group_by(FunnelEvent.event_type)
        return {event_type: int(total) for event_type, total in self.session.execute(stmt)}

    def step_counts(
        self, gate_id: int, since: datetime | None = None, until: datetime | None = None
    ) -> dict[str, int]:
        stmt = (
            self._window(
                select(FunnelEvent.step, func.count(FunnelEvent.id)), gate_id, since, until
            )
            .where(FunnelEvent.event_type == FunnelEventType.VERIFY_STEP.value)
            .group_by(FunnelEvent.step)
        )
        return {step: int(total) for step, total in self.session.execute(stmt) if step}

    def unique_sessions(
        self, gate_id: int, since: datetime | None = None, until: datetime | None = None
    ) -> int:
        stmt = self._window(
            select(func.count(func.distinct(FunnelEvent.session_id))), gate_id, since, until
        ).where(FunnelEvent.session_id.is_not(None))
        return int(self.session.execute(stmt).scalar() or 0)

    def views_by_source(
        self, gate_id: int, since: datetime | None = None, until: datetime | None = None
    ) -> dict[str, int]:
        source = func.coalesce(FunnelEvent.utm_source, "direct")
        stmt = (
            self._window(select(source, func.count(FunnelEvent.id)), gate_id, since, until)
            .where(FunnelEvent.event_type == FunnelEventType.VIEW.value)
            .group_by(source)
        )
        return {name: int(total) for name, total in self.session.execute(stmt)}
