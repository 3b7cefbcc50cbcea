from __future__ import annotations

from partyledger.db.models import Address
from partyledger.errors import Unauthorized


def is_owner(owner: Address, caller: Address) -> bool:
    return owner == caller


def assert_owner(owner: Address, caller: Address) -> None:
    if not is_owner(owner, caller):
        raise Unauthorized()
