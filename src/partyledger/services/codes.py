from __future__ import annotations

import hashlib
from dataclasses import replace
from typing import Callable, Iterable, Optional, Union

from partyledger.db.models import Address, CodeEntry, RegistryKind
from partyledger.errors import CodeInvalidOrConsumed
from partyledger.logging import get_logger
from partyledger.services.authz import assert_owner

RawCode = Union[str, bytes]
Encryptor = Callable[[RawCode], bytes]


def sha3_encrypt(raw_code: RawCode) -> bytes:
    data = raw_code.encode("utf-8") if isinstance(raw_code, str) else bytes(raw_code)
    return hashlib.sha3_256(data).digest()


class CodeRegistry:
    """Реестр одноразовых кодов.

    Коды хранятся только в непрозрачном виде (``encrypt(raw_code)``), каждый
    может быть погашен ровно один раз.
    """

    kind: Optional[RegistryKind] = None

    def __init__(self, owner: Address, encrypt: Encryptor = sha3_encrypt) -> None:
        self._owner = owner
        self._encrypt = encrypt
        self._entries: dict[bytes, CodeEntry] = {}
        self._log = get_logger(__name__)

    @classmethod
    def restore(
        cls,
        owner: Address,
        entries: Iterable[CodeEntry],
        encrypt: Encryptor = sha3_encrypt,
    ) -> "CodeRegistry":
        registry = cls(owner, encrypt=encrypt)
        for entry in entries:
            registry._entries[entry.opaque_code] = replace(entry)
        return registry

    @property
    def owner(self) -> Address:
        return self._owner

    def encrypt(self, raw_code: RawCode) -> bytes:
        return self._encrypt(raw_code)

    def add(self, raw_codes: Iterable[RawCode], caller: Address) -> int:
        assert_owner(self._owner, caller)
        opaque_codes = [self._encrypt(raw_code) for raw_code in raw_codes]

        added = 0
        for opaque in opaque_codes:
            if opaque in self._entries:
                continue
            self._entries[opaque] = CodeEntry(opaque_code=opaque)
            added += 1

        self._log.info("registry.add", kind=self._kind_label, added=added, total=len(self._entries))
        return added

    def verify(self, raw_code: RawCode) -> bool:
        entry = self._entries.get(self._encrypt(raw_code))
        return entry is not None and not entry.consumed

    def consume(self, raw_code: RawCode, by: Address) -> None:
        entry = self._entries.get(self._encrypt(raw_code))
        if entry is None or entry.consumed:
            raise CodeInvalidOrConsumed()
        entry.consumed_by = by
        self._log.info("registry.consume", kind=self._kind_label, consumed_by=by)

    def report(self, raw_code: RawCode) -> Optional[Address]:
        entry = self._entries.get(self._encrypt(raw_code))
        return entry.consumed_by if entry is not None else None

    def entries(self) -> list[CodeEntry]:
        return [replace(entry) for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def _kind_label(self) -> str:
        return self.kind.value if self.kind else "generic"


class InvitationRegistry(CodeRegistry):
    kind = RegistryKind.INVITATION


class ConfirmationRegistry(CodeRegistry):
    kind = RegistryKind.CONFIRMATION
