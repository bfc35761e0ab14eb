"""Data access helpers for submissions."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backstage_gate.core.errors import DuplicateSubmissionError
from backstage_gate.models.gate import GateStep
from backstage_gate.models.submission import STEP_COLUMNS, Submission

__all__ = ["SubmissionRepository"]


class SubmissionRepository:
    """Persistence for submission records; rows are never deleted."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_id(self, submission_id: int) -> Submission | None:
        return self.session.get(Submission, submission_id, populate_existing=True)

    def create(
        self,
        *,
        gate_id: int,
        email: str,
        display_name: str | None,
        consent: dict[str, Any],
        ip_address: str | None,
        user_agent: str | None,
    ) -> Submission:
        """Insert a submission, relying on the (gate_id, email) unique constraint.

        The insert must be the first write of the transaction: a lost race
        rolls the session back before the domain conflict is raised.

        Raises:
            DuplicateSubmissionError: If a record for the pair already exists.
        """
        submission = Submission(
            gate_id=gate_id,
            email=email,
            display_name=display_name,
            consent=consent,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(submission)
        try:
            self.session.flush()
        except IntegrityError as err:
            self.session.rollback()
            raise DuplicateSubmissionError(details={"gate_id": gate_id}) from err
        return submission

    def list_for_gate(
        self, gate_id: int, *, limit: int = 50, before: int | None = None
    ) -> list[Submission]:
        """Return a page of the gate's submissions, newest first.

        ``before`` is the id of the last row of the previous page.
        """
        stmt = select(Submission).where(Submission.gate_id == gate_id)
        if before is not None:
            stmt = stmt.where(Submission.id < before)
        result = self.session.execute(stmt.order_by(desc(Submission.id)).limit(limit))
        return list(result.scalars().all())

    def count_for_gate(self, gate_id: int) -> int:
        result = self.session.execute(
            select(func.count()).select_from(Submission).where(Submission.gate_id == gate_id)
        )
        return int(result.scalar_one())

    def mark_step_verified(self, submission_id: int, step: GateStep, at: datetime) -> bool:
        """Set the verified flag for ``step``; returns False if it was already set."""
        flag, stamp = STEP_COLUMNS[step]
        column = getattr(Submission, flag)
        result = self.session.execute(
            update(Submission)
            .where(Submission.id == submission_id, column.is_(False))
            .values({flag: True, stamp: at})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_credential_issued(self, submission_id: int, at: datetime) -> None:
        self.session.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(credential_issued_at=at)
            .execution_options(synchronize_session=False)
        )

    def mark_download_completed(self, submission_id: int, at: datetime) -> bool:
        result = self.session.execute(
            update(Submission)
            .where(Submission.id == submission_id, Submission.download_completed.is_(False))
            .values(download_completed=True, download_completed_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
