"""Funnel analytics: fire-and-forget event capture and aggregate reports."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from backstage_gate.db.time import as_utc, utcnow
from backstage_gate.models.analytics import FunnelEvent, FunnelEventType
from backstage_gate.models.gate import GateStep
from backstage_gate.repositories.analytics_repo import AnalyticsRepository
from backstage_gate.schemas.analytics import FunnelCounts, FunnelRatios, FunnelReport
from backstage_gate.schemas.common import Attribution
from backstage_gate.services.background import BackgroundDispatcher

logger = logging.getLogger(__name__)


def conversion_rate(part: int, total: int) -> float:
    """Return ``part / total`` as a percentage rounded to two decimals, 0.0 for empty totals."""
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


class FunnelAnalytics:
    """Record funnel transitions and compute conversion reports for a gate.

    Writes never block the caller: each one runs on its own session in a
    worker thread scheduled on the background dispatcher, and failures are
    only logged.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: BackgroundDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.clock = clock

    def record_event(
        self,
        gate_id: int,
        event_type: FunnelEventType,
        *,
        session_id: str | None = None,
        attribution: Attribution | None = None,
        step: GateStep | None = None,
        submission_id: int | None = None,
    ) -> None:
        """Schedule an analytics write; returns immediately."""
        attribution = attribution or Attribution()
        event = FunnelEvent(
            gate_id=gate_id,
            event_type=event_type.value,
            step=step.value if step is not None else None,
            session_id=session_id,
            submission_id=submission_id,
            referrer=attribution.referrer,
            utm_source=attribution.utm_source,
            utm_medium=attribution.utm_medium,
            utm_campaign=attribution.utm_campaign,
            country=attribution.country,
            created_at=self.clock(),
        )
        self.dispatcher.spawn(
            f"analytics:{event_type.value}:{gate_id}",
            asyncio.to_thread(self._write, event),
        )

    def _write(self, event: FunnelEvent) -> None:
        session = self.session_factory()
        try:
            AnalyticsRepository(session).add(event)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def funnel(
        self,
        gate_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> FunnelReport:
        """Aggregate the gate's funnel over ``[since, until)``.

        Bounds may carry any offset; they are compared in UTC.
        """
        since = as_utc(since) if since is not None else None
        until = as_utc(until) if until is not None else None
        session = self.session_factory()
        try:
            repo = AnalyticsRepository(session)
            by_type = repo.counts_by_type(gate_id, since, until)
            step_counts = repo.step_counts(gate_id, since, until)
            unique_sessions = repo.unique_sessions(gate_id, since, until)
            views_by_source = repo.views_by_source(gate_id, since, until)
        finally:
            session.close()

        views = by_type.get(FunnelEventType.VIEW.value, 0)
        submissions = by_type.get(FunnelEventType.SUBMIT.value, 0)
        downloads = by_type.get(FunnelEventType.DOWNLOAD.value, 0)

        counts = FunnelCounts(
            views=views,
            submissions=submissions,
            step_verifications=step_counts,
            downloads=downloads,
            unique_sessions=unique_sessions,
        )
        ratios = FunnelRatios(
            view_to_submit=conversion_rate(submissions, views),
            submit_to_download=conversion_rate(downloads, submissions),
            view_to_download=conversion_rate(downloads, views),
            submit_to_step={
                step: conversion_rate(total, submissions) for step, total in step_counts.items()
            },
        )
        return FunnelReport(
            gate_id=gate_id,
            since=since,
            until=until,
            counts=counts,
            ratios=ratios,
            views_by_source=views_by_source,
        )


__all__ = ["FunnelAnalytics", "conversion_rate"]
