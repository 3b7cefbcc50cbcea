from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, TypeVar

from partyledger.db.models import Address
from partyledger.errors import InsufficientFunds, LedgerError
from partyledger.logging import get_logger

T = TypeVar("T")

FEE_ACCOUNT = "fees"


@dataclass(frozen=True, slots=True)
class Transfer:
    from_account: Address
    to_account: Address
    amount: int


class Checkpointed(Protocol):
    address: Address

    def checkpoint(self) -> Any: ...

    def rollback(self, checkpoint: Any) -> None: ...


class AccountBook:
    """Балансы счетов и транзакционная обёртка для вызовов реестра."""

    def __init__(self, balances: Optional[Mapping[Address, int]] = None, fee_account: Address = FEE_ACCOUNT) -> None:
        self._balances: dict[Address, int] = dict(balances or {})
        self.fee_account = fee_account
        self._log = get_logger(__name__)

    def balance(self, account: Address) -> int:
        return self._balances.get(account, 0)

    def apply(self, transfer: Transfer) -> None:
        if transfer.amount < 0:
            raise ValueError("amount must be non-negative")
        if self.balance(transfer.from_account) < transfer.amount:
            raise InsufficientFunds()
        self._balances[transfer.from_account] = self.balance(transfer.from_account) - transfer.amount
        self._balances[transfer.to_account] = self.balance(transfer.to_account) + transfer.amount

    def total(self) -> int:
        return sum(self._balances.values())

    def execute(
        self,
        sender: Address,
        target: Checkpointed,
        operation: Callable[[], T],
        *,
        value: int = 0,
        fee: int = 0,
    ) -> T:
        """Выполнить вызов ``target`` по принципу «всё или ничего».

        ``value`` переводится на счёт ``target.address`` до вызова и
        возвращается отправителю, если вызов не удался. Комиссия ``fee``
        списывается в любом случае. ``Transfer``, который вернула операция,
        проводится по книге; если провести его нельзя, состояние ``target``
        откатывается к точке до вызова.
        """
        if value < 0 or fee < 0:
            raise ValueError("value and fee must be non-negative")
        if self.balance(sender) < value + fee:
            raise InsufficientFunds()

        if fee:
            self.apply(Transfer(from_account=sender, to_account=self.fee_account, amount=fee))
        self.apply(Transfer(from_account=sender, to_account=target.address, amount=value))
        checkpoint = target.checkpoint()

        try:
            result = operation()
            if isinstance(result, Transfer):
                self.apply(result)
        except LedgerError as exc:
            target.rollback(checkpoint)
            self.apply(Transfer(from_account=target.address, to_account=sender, amount=value))
            self._log.warning(
                "accounts.refund",
                sender=sender,
                amount=value,
                fee=fee,
                reason=type(exc).__name__,
            )
            raise

        return result
