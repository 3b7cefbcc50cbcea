from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

Address = str

FIXED_DEPOSIT = 10**17
DEFAULT_EVENT_NAME = "Test"
DEFAULT_PARTICIPANT_LIMIT = 0
DEFAULT_COOLING_PERIOD = timedelta(weeks=1)


class EventPhase(str, Enum):
    OPEN = "open"
    NORMAL_CLOSE = "normal_close"
    CANCELLED = "cancelled"
    CLEARED = "cleared"


class RegistryKind(str, Enum):
    INVITATION = "invitation"
    CONFIRMATION = "confirmation"


@dataclass(frozen=True, slots=True)
class EventConfig:
    name: str = DEFAULT_EVENT_NAME
    deposit: int = FIXED_DEPOSIT
    participant_limit: int = DEFAULT_PARTICIPANT_LIMIT
    cooling_period: timedelta = DEFAULT_COOLING_PERIOD


@dataclass(slots=True)
class Participant:
    address: Address
    display_name: str
    registered: bool = False
    attended: bool = False
    paid_out: bool = False


@dataclass(slots=True)
class EventState:
    registered_count: int = 0
    attended_count: int = 0
    total_balance: int = 0
    ended: bool = False
    cancelled: bool = False
    ended_at: Optional[datetime] = None
    cleared: bool = False

    @property
    def phase(self) -> EventPhase:
        if self.cleared:
            return EventPhase.CLEARED
        if not self.ended:
            return EventPhase.OPEN
        return EventPhase.CANCELLED if self.cancelled else EventPhase.NORMAL_CLOSE


@dataclass(slots=True)
class CodeEntry:
    opaque_code: bytes
    consumed_by: Optional[Address] = field(default=None)

    @property
    def consumed(self) -> bool:
        return self.consumed_by is not None
