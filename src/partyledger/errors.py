"""Типизированные ошибки PartyLedger.

Каждая операция реестра сначала проверяет все предусловия и только потом
меняет состояние, поэтому любое из этих исключений означает, что ничего
не изменилось.
"""

from __future__ import annotations


class LedgerError(Exception):
    default_message = "Операция отклонена."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class Unauthorized(LedgerError, PermissionError):
    default_message = "Только владелец может выполнять это действие."


class AlreadyEnded(LedgerError):
    default_message = "Событие уже завершено."


class NotEnded(LedgerError):
    default_message = "Событие ещё не завершено."


class AlreadyCleared(LedgerError):
    default_message = "Остаток средств уже выведен."


class CapacityExceeded(LedgerError):
    default_message = "Достигнут лимит участников."


class WrongDepositAmount(LedgerError):
    default_message = "Неверная сумма депозита."


class AlreadyRegistered(LedgerError):
    default_message = "Вы уже зарегистрированы."


class NotRegistered(LedgerError):
    default_message = "Вы не зарегистрированы на это событие."


class AlreadyAttended(LedgerError):
    default_message = "Присутствие уже отмечено."


class CodeInvalidOrConsumed(LedgerError):
    default_message = "Код недействителен или уже использован."


class NotConfigured(LedgerError):
    default_message = "Для события не подключён реестр кодов."


class CoolingPeriodNotElapsed(LedgerError):
    default_message = "Период ожидания ещё не истёк."


class InsufficientFunds(LedgerError):
    default_message = "Недостаточно средств на счёте."
