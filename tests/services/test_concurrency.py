"""Races between independent requests, each on its own connection and event loop."""
from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Coroutine
from typing import Any

import pytest
from sqlalchemy import func, select

from backstage_gate.core.errors import (
    CredentialAlreadyUsedError,
    DuplicateSubmissionError,
    HandshakeReplayError,
    MaxDownloadsReachedError,
)
from backstage_gate.models import GateStep, Submission
from backstage_gate.repositories.gate_repo import GateRepository
from backstage_gate.services.background import BackgroundDispatcher

RACERS = 4


def _race(
    session_factory,
    make_orchestrator,
    work: Callable[[Any, int], Coroutine[Any, Any, Any]],
    racers: int = RACERS,
) -> list[Any]:
    """Run ``work(orchestrator, index)`` in parallel threads and collect results or errors."""
    barrier = threading.Barrier(racers)
    outcomes: list[Any] = [None] * racers

    def _runner(index: int) -> None:
        session = session_factory()
        dispatcher = BackgroundDispatcher(timeout=5.0)
        orchestrator = make_orchestrator(session, dispatcher)

        async def _go() -> Any:
            barrier.wait()
            try:
                return await work(orchestrator, index)
            finally:
                await dispatcher.drain()

        try:
            outcomes[index] = asyncio.run(_go())
        except Exception as exc:  # collected for assertions
            outcomes[index] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=_runner, args=(i,)) for i in range(racers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def _successes(outcomes: list[Any]) -> list[Any]:
    return [outcome for outcome in outcomes if not isinstance(outcome, Exception)]


def test_concurrent_identical_submits_create_one_record(
    session_factory, make_orchestrator, gate_factory, db_session
):
    gate_factory()

    outcomes = _race(
        session_factory,
        make_orchestrator,
        lambda orch, _: orch.submit("night-drive", "fan@example.com", True),
    )

    assert len(_successes(outcomes)) == 1
    failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert all(isinstance(failure, DuplicateSubmissionError) for failure in failures)
    assert db_session.scalar(select(func.count()).select_from(Submission)) == 1


def test_concurrent_callbacks_verify_once(
    session_factory, make_orchestrator, gate_factory, db_session, provider
):
    gate_factory()
    setup = make_orchestrator(db_session)
    submitted = asyncio.run(setup.submit("night-drive", "fan@example.com", True))
    begun = asyncio.run(
        setup.begin_step_verification(submitted.submission_id, "soundcloud", GateStep.SOCIAL_REPOST)
    )

    outcomes = _race(
        session_factory,
        make_orchestrator,
        lambda orch, _: orch.complete_step_verification(begun.handshake_value, "grant"),
    )

    assert _successes(outcomes) == [True]
    assert sum(isinstance(outcome, HandshakeReplayError) for outcome in outcomes) == RACERS - 1
    assert len(provider.proofs) == 1


def test_concurrent_redeems_of_one_credential(
    session_factory, make_orchestrator, gate_factory, db_session
):
    gate_factory(required_steps=[GateStep.EMAIL])
    setup = make_orchestrator(db_session)
    submitted = asyncio.run(setup.submit("night-drive", "fan@example.com", True))
    credential = asyncio.run(setup.issue_download_credential(submitted.submission_id))

    outcomes = _race(
        session_factory,
        make_orchestrator,
        lambda orch, _: orch.redeem_credential(credential.token),
    )

    assert len(_successes(outcomes)) == 1
    assert sum(isinstance(o, CredentialAlreadyUsedError) for o in outcomes) == RACERS - 1
    assert GateRepository(db_session).get_by_slug("night-drive").downloads_issued == 1


@pytest.mark.parametrize("max_downloads", [1, 2])
def test_ceiling_holds_under_parallel_redeemers(
    session_factory, make_orchestrator, gate_factory, db_session, max_downloads
):
    gate_factory(required_steps=[GateStep.EMAIL], max_downloads=max_downloads)
    setup = make_orchestrator(db_session)
    tokens = []
    for index in range(RACERS):
        submitted = asyncio.run(setup.submit("night-drive", f"fan{index}@example.com", True))
        tokens.append(asyncio.run(setup.issue_download_credential(submitted.submission_id)).token)

    outcomes = _race(
        session_factory,
        make_orchestrator,
        lambda orch, index: orch.redeem_credential(tokens[index]),
    )

    assert len(_successes(outcomes)) == max_downloads
    assert sum(isinstance(o, MaxDownloadsReachedError) for o in outcomes) == RACERS - max_downloads
    assert GateRepository(db_session).get_by_slug("night-drive").downloads_issued == max_downloads
