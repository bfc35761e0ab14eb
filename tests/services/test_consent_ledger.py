from __future__ import annotations

from datetime import timedelta

import pytest

from backstage_gate.core.errors import ValidationError
from backstage_gate.models import ConsentAction, ConsentEvent, ConsentSource, LedgerImmutableError
from backstage_gate.schemas.consent import ConsentEntry
from backstage_gate.services.consent_ledger import ConsentLedger

CONTACT = "fan@example.com"


@pytest.fixture()
def ledger(db_session, clock) -> ConsentLedger:
    return ConsentLedger(db_session, clock=clock)


def test_record_and_timeline_in_order(ledger, clock):
    ledger.subscribe(
        CONTACT, metadata={"gate_slug": "night-drive", "accepted_brands": {"artist": True}}
    )
    clock.advance(days=3)
    ledger.unsubscribe(CONTACT, reason="too many emails")
    clock.advance(days=1)
    ledger.resubscribe(CONTACT)

    timeline = ledger.timeline_for(CONTACT)
    assert [event.action for event in timeline] == ["subscribe", "unsubscribe", "resubscribe"]
    assert timeline[0].timestamp < timeline[1].timestamp < timeline[2].timestamp
    assert timeline[1].metadata_ == {"reason": "too many emails", "extensions": {}}
    assert timeline[1].source == ConsentSource.EMAIL_LINK


def test_backdated_entry_sorts_by_timestamp(ledger, clock):
    ledger.subscribe(CONTACT)
    ledger.record(
        ConsentEntry(
            contact_id=CONTACT,
            action=ConsentAction.DECLINE,
            source=ConsentSource.MANUAL_IMPORT,
            timestamp=clock.now - timedelta(days=30),
        )
    )

    assert [event.action for event in ledger.timeline_for(CONTACT)] == ["decline", "subscribe"]


def test_timeline_never_shrinks(ledger):
    lengths = []
    for action in (
        ConsentAction.SUBSCRIBE, ConsentAction.SPAM_COMPLAINT, ConsentAction.RESUBSCRIBE
    ):
        ledger.record(
            ConsentEntry(contact_id=CONTACT, action=action, source=ConsentSource.API_REQUEST)
        )
        lengths.append(len(ledger.timeline_for(CONTACT)))
    assert lengths == [1, 2, 3]


def test_contact_ids_are_normalized(ledger):
    ledger.subscribe("  Fan@Example.COM")
    assert len(ledger.timeline_for("fan@example.com")) == 1
    assert len(ledger.timeline_for("FAN@EXAMPLE.COM")) == 1
    assert ledger.timeline_for("other@example.com") == []


def test_no_business_rule_rejects_events(ledger):
    # Unsubscribing a contact that never subscribed is still recorded.
    ledger.unsubscribe(CONTACT)
    ledger.unsubscribe(CONTACT)
    assert len(ledger.timeline_for(CONTACT)) == 2


def test_metadata_is_validated_per_action(ledger):
    with pytest.raises(ValidationError):
        ledger.record(
            ConsentEntry(
                contact_id=CONTACT,
                action=ConsentAction.BOUNCE,
                source=ConsentSource.WEBHOOK_BOUNCE,
                metadata={"bounce_type": "bouncy"},
            )
        )
    with pytest.raises(ValidationError):
        ledger.record(
            ConsentEntry(
                contact_id=CONTACT,
                action=ConsentAction.RESUBSCRIBE,
                source=ConsentSource.EMAIL_LINK,
                metadata={"gate_slug": "not-allowed-here"},
            )
        )
    assert ledger.timeline_for(CONTACT) == []


def test_extensions_are_bounded(ledger):
    ledger.record(
        ConsentEntry(
            contact_id=CONTACT,
            action=ConsentAction.UNSUBSCRIBE,
            source=ConsentSource.EMAIL_LINK,
            metadata={"extensions": {"list": "weekly", "attempt": 2}},
        )
    )

    too_many = {f"key{i}": i for i in range(21)}
    with pytest.raises(ValidationError):
        ledger.record(
            ConsentEntry(
                contact_id=CONTACT,
                action=ConsentAction.UNSUBSCRIBE,
                source=ConsentSource.EMAIL_LINK,
                metadata={"extensions": too_many},
            )
        )
    with pytest.raises(ValidationError):
        ledger.record(
            ConsentEntry(
                contact_id=CONTACT,
                action=ConsentAction.UNSUBSCRIBE,
                source=ConsentSource.EMAIL_LINK,
                metadata={"extensions": {"note": "x" * 513}},
            )
        )
    with pytest.raises(ValidationError):
        ledger.record(
            ConsentEntry(
                contact_id=CONTACT,
                action=ConsentAction.UNSUBSCRIBE,
                source=ConsentSource.EMAIL_LINK,
                metadata={"extensions": {"nested": {"a": 1}}},
            )
        )


def test_entries_cannot_be_modified_or_deleted(ledger, db_session):
    event = ledger.subscribe(CONTACT)

    event.action = ConsentAction.UNSUBSCRIBE.value
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()

    event = db_session.get(ConsentEvent, event.id)
    db_session.delete(event)
    with pytest.raises(LedgerImmutableError):
        db_session.flush()
    db_session.rollback()

    assert [e.action for e in ledger.timeline_for(CONTACT)] == ["subscribe"]


@pytest.mark.parametrize(
    ("steps", "expected"),
    [
        ([], None),
        (["subscribe"], True),
        (["subscribe", "unsubscribe"], False),
        (["subscribe", "unsubscribe", "resubscribe"], True),
        (["decline"], False),
        (["subscribe", "soft_bounce"], True),
        (["subscribe", "hard_bounce"], False),
    ],
)
def test_current_status(ledger, clock, steps, expected):
    for step in steps:
        clock.advance(minutes=1)
        if step == "subscribe":
            ledger.subscribe(CONTACT)
        elif step == "unsubscribe":
            ledger.unsubscribe(CONTACT)
        elif step == "resubscribe":
            ledger.resubscribe(CONTACT)
        elif step == "decline":
            ledger.record(
                ConsentEntry(
                    contact_id=CONTACT,
                    action=ConsentAction.DECLINE,
                    source=ConsentSource.DOWNLOAD_GATE,
                )
            )
        else:
            ledger.bounce(CONTACT, step.split("_")[0], reason="mailbox full")

    assert ledger.current_status(CONTACT) is expected
