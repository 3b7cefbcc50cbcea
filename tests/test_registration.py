from dataclasses import asdict
from datetime import timedelta

import pytest

from partyledger.db.models import FIXED_DEPOSIT, EventPhase
from partyledger.errors import (
    AlreadyEnded,
    AlreadyRegistered,
    CapacityExceeded,
    CodeInvalidOrConsumed,
    NotConfigured,
    Unauthorized,
    WrongDepositAmount,
)
from partyledger.services.codes import InvitationRegistry
from partyledger.services.ledger import EventLedger

OWNER = "0xowner"
GUEST = "0xguest"
DEPOSIT = 10**17


def snapshot(ledger: EventLedger) -> tuple:
    return asdict(ledger.state), [asdict(p) for p in ledger.participants()], ledger.participant_limit


def test_default_values():
    ledger = EventLedger(OWNER)
    assert ledger.name == "Test"
    assert ledger.deposit == DEPOSIT == FIXED_DEPOSIT
    assert ledger.participant_limit == 0
    assert ledger.cooling_period.total_seconds() == 604_800
    assert ledger.registered_count == 0
    assert ledger.attended_count == 0
    assert ledger.total_balance == 0
    assert ledger.ended is False
    assert ledger.phase == EventPhase.OPEN


def test_register_increments_counters():
    ledger = EventLedger(OWNER)
    participant = ledger.register("@bighero6", DEPOSIT, OWNER)

    assert participant.registered is True
    assert participant.display_name == "@bighero6"
    assert ledger.registered_count == 1
    assert ledger.total_balance == DEPOSIT
    assert ledger.is_registered(OWNER) is True
    assert ledger.is_registered(GUEST) is False


def test_register_unlimited():
    ledger = EventLedger(OWNER)
    for i in range(25):
        ledger.register(f"guest{i}", DEPOSIT, f"0x{i}")
    assert ledger.registered_count == 25
    assert ledger.total_balance == 25 * DEPOSIT


def test_register_over_limit():
    ledger = EventLedger(OWNER, participant_limit=2)
    ledger.register("one", DEPOSIT, "0x1")
    ledger.register("two", DEPOSIT, "0x2")
    before = snapshot(ledger)

    with pytest.raises(CapacityExceeded):
        ledger.register("three", DEPOSIT, "0x3")

    assert snapshot(ledger) == before
    assert ledger.registered_count == 2
    assert ledger.total_balance == 2 * DEPOSIT


def test_capacity_is_checked_before_amount():
    ledger = EventLedger(OWNER, participant_limit=1)
    ledger.register("one", DEPOSIT, "0x1")
    with pytest.raises(CapacityExceeded):
        ledger.register("two", DEPOSIT // 2, "0x2")


@pytest.mark.parametrize("amount", [0, 5, DEPOSIT // 2, DEPOSIT - 1, DEPOSIT + 1, 2 * DEPOSIT])
def test_wrong_deposit(amount):
    ledger = EventLedger(OWNER)
    before = snapshot(ledger)
    with pytest.raises(WrongDepositAmount):
        ledger.register("@bighero6", amount, GUEST)
    assert snapshot(ledger) == before
    assert ledger.is_registered(GUEST) is False


def test_register_twice():
    ledger = EventLedger(OWNER)
    ledger.register("first", DEPOSIT, GUEST)
    before = snapshot(ledger)
    with pytest.raises(AlreadyRegistered):
        ledger.register("second", DEPOSIT, GUEST)
    assert snapshot(ledger) == before
    assert ledger.participant(GUEST).display_name == "first"


@pytest.mark.parametrize("close", ["payback", "cancel"])
def test_cannot_register_after_end(close):
    ledger = EventLedger(OWNER)
    getattr(ledger, close)(OWNER)
    before = snapshot(ledger)
    with pytest.raises(AlreadyEnded):
        ledger.register("late", DEPOSIT, GUEST)
    assert snapshot(ledger) == before


def test_register_with_invitation():
    invitations = InvitationRegistry(OWNER)
    invitations.add(["1234567890"], OWNER)
    ledger = EventLedger(OWNER, cooling_period=timedelta(seconds=600), invitations=invitations)

    ledger.register_with_invitation_code("@bighero6", "1234567890", DEPOSIT, GUEST)

    assert ledger.registered_count == 1
    assert invitations.report("1234567890") == GUEST


def test_register_with_invalid_invitation():
    invitations = InvitationRegistry(OWNER)
    invitations.add(["1234567890"], OWNER)
    ledger = EventLedger(OWNER, invitations=invitations)

    with pytest.raises(CodeInvalidOrConsumed):
        ledger.register_with_invitation_code("@bighero6", "invalid_code", DEPOSIT, GUEST)

    assert ledger.registered_count == 0
    assert ledger.total_balance == 0


def test_invitation_used_twice():
    invitations = InvitationRegistry(OWNER)
    invitations.add(["1234567890"], OWNER)
    ledger = EventLedger(OWNER, invitations=invitations)
    ledger.register_with_invitation_code("first", "1234567890", DEPOSIT, GUEST)

    with pytest.raises(CodeInvalidOrConsumed):
        ledger.register_with_invitation_code("second", "1234567890", DEPOSIT, "0xother")
    assert ledger.registered_count == 1


def test_invitation_not_consumed_when_ledger_rejects():
    invitations = InvitationRegistry(OWNER)
    invitations.add(["1234567890"], OWNER)
    ledger = EventLedger(OWNER, invitations=invitations)

    with pytest.raises(WrongDepositAmount):
        ledger.register_with_invitation_code("@bighero6", "1234567890", 5, GUEST)

    assert invitations.verify("1234567890") is True
    assert invitations.report("1234567890") is None


def test_invitation_after_end():
    invitations = InvitationRegistry(OWNER)
    invitations.add(["1234567890"], OWNER)
    ledger = EventLedger(OWNER, invitations=invitations)
    ledger.cancel(OWNER)

    with pytest.raises(AlreadyEnded):
        ledger.register_with_invitation_code("@bighero6", "1234567890", DEPOSIT, GUEST)
    assert invitations.verify("1234567890") is True


def test_invitation_not_configured():
    ledger = EventLedger(OWNER)
    with pytest.raises(NotConfigured):
        ledger.register_with_invitation_code("@bighero6", "1234567890", DEPOSIT, GUEST)
    assert ledger.registered_count == 0


def test_set_limit_of_participants():
    ledger = EventLedger(OWNER)
    ledger.set_limit_of_participants(1, OWNER)
    ledger.register("@bighero6", DEPOSIT, OWNER)
    with pytest.raises(CapacityExceeded):
        ledger.register("anotherName", DEPOSIT, GUEST)
    assert ledger.registered_count == 1


def test_set_limit_rules():
    ledger = EventLedger(OWNER)
    ledger.register("one", DEPOSIT, "0x1")
    ledger.register("two", DEPOSIT, "0x2")

    with pytest.raises(Unauthorized):
        ledger.set_limit_of_participants(5, GUEST)
    with pytest.raises(CapacityExceeded):
        ledger.set_limit_of_participants(1, OWNER)
    with pytest.raises(ValueError):
        ledger.set_limit_of_participants(-1, OWNER)
    assert ledger.participant_limit == 0

    ledger.set_limit_of_participants(2, OWNER)
    assert ledger.participant_limit == 2

    ledger.payback(OWNER)
    with pytest.raises(AlreadyEnded):
        ledger.set_limit_of_participants(0, OWNER)


def test_invalid_construction():
    with pytest.raises(ValueError):
        EventLedger(OWNER, participant_limit=-1)
    with pytest.raises(ValueError):
        EventLedger(OWNER, cooling_period=timedelta(seconds=-1))
