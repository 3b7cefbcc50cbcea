from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, NoReturn, Optional, Protocol

from partyledger.config import Settings, get_settings
from partyledger.db.models import (
    DEFAULT_COOLING_PERIOD,
    DEFAULT_EVENT_NAME,
    DEFAULT_PARTICIPANT_LIMIT,
    FIXED_DEPOSIT,
    Address,
    EventConfig,
    EventPhase,
    EventState,
    Participant,
)
from partyledger.errors import (
    AlreadyAttended,
    AlreadyCleared,
    AlreadyEnded,
    AlreadyRegistered,
    CapacityExceeded,
    CodeInvalidOrConsumed,
    CoolingPeriodNotElapsed,
    LedgerError,
    NotConfigured,
    NotEnded,
    NotRegistered,
    Unauthorized,
    WrongDepositAmount,
)
from partyledger.logging import get_logger
from partyledger.services.accounts import Transfer
from partyledger.services.authz import is_owner
from partyledger.services.codes import RawCode

Clock = Callable[[], datetime]

LEDGER_ACCOUNT = "ledger"


class CodeConsumer(Protocol):
    def consume(self, raw_code: RawCode, by: Address) -> None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventLedger:
    """Реестр события с фиксированным депозитом.

    Open -> Ended (payback или cancel) -> Cleared. Каждая операция сначала
    проверяет все условия и только потом меняет состояние: при ошибке
    состояние, участники и реестры кодов остаются прежними.
    """

    def __init__(
        self,
        owner: Address,
        *,
        name: str = DEFAULT_EVENT_NAME,
        participant_limit: int = DEFAULT_PARTICIPANT_LIMIT,
        cooling_period: timedelta = DEFAULT_COOLING_PERIOD,
        invitations: Optional[CodeConsumer] = None,
        confirmations: Optional[CodeConsumer] = None,
        clock: Clock = utcnow,
        address: Address = LEDGER_ACCOUNT,
    ) -> None:
        if participant_limit < 0:
            raise ValueError("participant_limit must be non-negative")
        if cooling_period < timedelta(0):
            raise ValueError("cooling_period must be non-negative")

        self._owner = owner
        self._config = EventConfig(
            name=name,
            deposit=FIXED_DEPOSIT,
            participant_limit=participant_limit,
            cooling_period=cooling_period,
        )
        self._invitations = invitations
        self._confirmations = confirmations
        self._clock = clock
        self.address = address
        self._state = EventState()
        self._participants: dict[Address, Participant] = {}
        self._log = get_logger(__name__)

    @classmethod
    def restore(
        cls,
        config: EventConfig,
        owner: Address,
        state: EventState,
        participants: Iterable[Participant],
        *,
        invitations: Optional[CodeConsumer] = None,
        confirmations: Optional[CodeConsumer] = None,
        clock: Clock = utcnow,
        address: Address = LEDGER_ACCOUNT,
    ) -> "EventLedger":
        if state.ended and state.ended_at is None:
            raise ValueError("ended event must have ended_at")
        if state.cleared and not state.ended:
            raise ValueError("cleared event must be ended")
        ledger = cls(
            owner,
            name=config.name,
            participant_limit=config.participant_limit,
            cooling_period=config.cooling_period,
            invitations=invitations,
            confirmations=confirmations,
            clock=clock,
            address=address,
        )
        ledger._state = replace(state)
        ledger._participants = {p.address: replace(p) for p in participants}
        return ledger

    def checkpoint(self) -> tuple[EventConfig, EventState, dict[Address, Participant]]:
        return self._config, replace(self._state), {a: replace(p) for a, p in self._participants.items()}

    def rollback(self, checkpoint: tuple[EventConfig, EventState, dict[Address, Participant]]) -> None:
        config, state, participants = checkpoint
        self._config = config
        self._state = replace(state)
        self._participants = {a: replace(p) for a, p in participants.items()}
        self._log.warning("ledger.rollback", total_balance=self._state.total_balance)

    def register(self, display_name: str, paid_amount: int, caller: Address) -> Participant:
        self._check_registration("register", paid_amount, caller)
        return self._commit_registration(display_name, caller)

    def register_with_invitation_code(
        self,
        display_name: str,
        raw_code: RawCode,
        paid_amount: int,
        caller: Address,
    ) -> Participant:
        operation = "register_with_invitation_code"
        if self._invitations is None:
            self._reject(operation, caller, NotConfigured())
        self._check_registration(operation, paid_amount, caller)
        # код гасится последним: все проверки реестра уже пройдены
        try:
            self._invitations.consume(raw_code, caller)
        except CodeInvalidOrConsumed as exc:
            self._reject(operation, caller, exc)
        return self._commit_registration(display_name, caller)

    def set_limit_of_participants(self, limit: int, caller: Address) -> None:
        operation = "set_limit_of_participants"
        self._require_owner(operation, caller)
        self._require_open(operation, caller)
        if limit < 0:
            raise ValueError("limit must be non-negative")
        if 0 < limit < self._state.registered_count:
            self._reject(operation, caller, CapacityExceeded("Лимит меньше числа уже зарегистрированных."))

        self._config = replace(self._config, participant_limit=limit)
        self._log.info("ledger.limit", limit=limit)

    def attend(self, addresses: Iterable[Address], caller: Address) -> list[Address]:
        operation = "attend"
        self._require_owner(operation, caller)
        self._require_open(operation, caller)

        marked: list[Address] = []
        for address in addresses:
            participant = self._participants.get(address)
            if participant is None or not participant.registered or participant.attended:
                continue
            participant.attended = True
            self._state.attended_count += 1
            marked.append(address)

        self._log.info("ledger.attend", marked=marked, attended=self._state.attended_count)
        return marked

    def attend_with_confirmation_code(self, raw_code: RawCode, caller: Address) -> None:
        operation = "attend_with_confirmation_code"
        if self._confirmations is None:
            self._reject(operation, caller, NotConfigured())
        self._require_open(operation, caller)
        participant = self._participants.get(caller)
        if participant is None or not participant.registered:
            self._reject(operation, caller, NotRegistered())
        if participant.attended:
            self._reject(operation, caller, AlreadyAttended())
        try:
            self._confirmations.consume(raw_code, caller)
        except CodeInvalidOrConsumed as exc:
            self._reject(operation, caller, exc)

        participant.attended = True
        self._state.attended_count += 1
        self._log.info("ledger.attend", marked=[caller], attended=self._state.attended_count)

    def payback(self, caller: Address) -> None:
        self._end("payback", caller, cancelled=False)

    def cancel(self, caller: Address) -> None:
        self._end("cancel", caller, cancelled=True)

    def withdraw(self, caller: Address) -> Optional[Transfer]:
        participant = self._participants.get(caller)
        if participant is None or not self._is_eligible(participant):
            self._log.info("ledger.withdraw.skipped", participant=caller)
            return None

        participant.paid_out = True
        self._state.total_balance -= self._config.deposit
        self._log.info(
            "ledger.withdraw",
            participant=caller,
            amount=self._config.deposit,
            total_balance=self._state.total_balance,
        )
        return Transfer(from_account=self.address, to_account=caller, amount=self._config.deposit)

    def clear(self, note: str, caller: Address) -> Transfer:
        operation = "clear"
        self._require_owner(operation, caller)
        if not self._state.ended:
            self._reject(operation, caller, NotEnded())
        if self._state.cleared:
            self._reject(operation, caller, AlreadyCleared())
        assert self._state.ended_at is not None
        if self._clock() < self._state.ended_at + self._config.cooling_period:
            self._reject(operation, caller, CoolingPeriodNotElapsed())

        amount = self._state.total_balance
        self._state.total_balance = 0
        self._state.cleared = True
        self._log.info("ledger.clear", owner=self._owner, amount=amount, note=note)
        return Transfer(from_account=self.address, to_account=self._owner, amount=amount)

    def is_registered(self, address: Address) -> bool:
        participant = self._participants.get(address)
        return participant is not None and participant.registered

    def is_attended(self, address: Address) -> bool:
        participant = self._participants.get(address)
        return participant is not None and participant.attended

    def is_paid(self, address: Address) -> bool:
        participant = self._participants.get(address)
        return participant is not None and participant.paid_out

    def participant(self, address: Address) -> Optional[Participant]:
        participant = self._participants.get(address)
        return replace(participant) if participant is not None else None

    def participants(self) -> list[Participant]:
        return [replace(p) for p in self._participants.values()]

    @property
    def owner(self) -> Address:
        return self._owner

    @property
    def config(self) -> EventConfig:
        return self._config

    @property
    def state(self) -> EventState:
        return replace(self._state)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def deposit(self) -> int:
        return self._config.deposit

    @property
    def participant_limit(self) -> int:
        return self._config.participant_limit

    @property
    def cooling_period(self) -> timedelta:
        return self._config.cooling_period

    @property
    def registered_count(self) -> int:
        return self._state.registered_count

    @property
    def attended_count(self) -> int:
        return self._state.attended_count

    @property
    def total_balance(self) -> int:
        return self._state.total_balance

    @property
    def ended(self) -> bool:
        return self._state.ended

    @property
    def cancelled(self) -> bool:
        return self._state.cancelled

    @property
    def cleared(self) -> bool:
        return self._state.cleared

    @property
    def ended_at(self) -> Optional[datetime]:
        return self._state.ended_at

    @property
    def phase(self) -> EventPhase:
        return self._state.phase

    def _check_registration(self, operation: str, paid_amount: int, caller: Address) -> None:
        self._require_open(operation, caller)
        limit = self._config.participant_limit
        if limit > 0 and self._state.registered_count >= limit:
            self._reject(operation, caller, CapacityExceeded())
        if paid_amount != self._config.deposit:
            self._reject(operation, caller, WrongDepositAmount())
        if self.is_registered(caller):
            self._reject(operation, caller, AlreadyRegistered())

    def _commit_registration(self, display_name: str, caller: Address) -> Participant:
        participant = Participant(address=caller, display_name=display_name, registered=True)
        self._participants[caller] = participant
        self._state.registered_count += 1
        self._state.total_balance += self._config.deposit
        self._log.info(
            "ledger.register",
            participant=caller,
            registered=self._state.registered_count,
            total_balance=self._state.total_balance,
        )
        return replace(participant)

    def _end(self, operation: str, caller: Address, *, cancelled: bool) -> None:
        self._require_owner(operation, caller)
        self._require_open(operation, caller)

        self._state.ended = True
        self._state.cancelled = cancelled
        self._state.ended_at = self._clock()
        self._log.info(
            f"ledger.{operation}",
            registered=self._state.registered_count,
            attended=self._state.attended_count,
            total_balance=self._state.total_balance,
        )

    def _is_eligible(self, participant: Participant) -> bool:
        if not participant.registered or participant.paid_out:
            return False
        if not self._state.ended or self._state.cleared:
            return False
        return self._state.cancelled or participant.attended

    def _require_owner(self, operation: str, caller: Address) -> None:
        if not is_owner(self._owner, caller):
            self._reject(operation, caller, Unauthorized())

    def _require_open(self, operation: str, caller: Address) -> None:
        if self._state.ended:
            self._reject(operation, caller, AlreadyEnded())

    def _reject(self, operation: str, caller: Address, error: LedgerError) -> NoReturn:
        self._log.warning("ledger.rejected", operation=operation, caller=caller, reason=type(error).__name__)
        raise error


def create_ledger(
    owner: Address,
    settings: Optional[Settings] = None,
    *,
    invitations: Optional[CodeConsumer] = None,
    confirmations: Optional[CodeConsumer] = None,
    clock: Clock = utcnow,
) -> EventLedger:
    settings = settings or get_settings()
    return EventLedger(
        owner,
        name=settings.event_name,
        participant_limit=settings.participant_limit,
        cooling_period=settings.cooling_period,
        invitations=invitations,
        confirmations=confirmations,
        clock=clock,
    )
