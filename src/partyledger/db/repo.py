from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable, Optional

import asyncpg

from partyledger.db.models import Address, CodeEntry, EventConfig, EventState, Participant, RegistryKind
from partyledger.logging import get_logger, sql_logger
from partyledger.services.codes import (
    CodeRegistry,
    ConfirmationRegistry,
    Encryptor,
    InvitationRegistry,
    sha3_encrypt,
)
from partyledger.services.ledger import Clock, CodeConsumer, EventLedger, utcnow

REGISTRY_CLASSES: dict[RegistryKind, type[CodeRegistry]] = {
    RegistryKind.INVITATION: InvitationRegistry,
    RegistryKind.CONFIRMATION: ConfirmationRegistry,
}


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg ожидает схему postgresql/postgres, без "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.executemany", query=command)
        await self._pool.executemany(command, args)

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


class LedgerRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_event(
        self,
        ledger: EventLedger,
        invitation_registry_id: Optional[int] = None,
        confirmation_registry_id: Optional[int] = None,
    ) -> int:
        config = ledger.config
        row = await self.db.fetchrow(
            """
            INSERT INTO events (owner, name, deposit, participant_limit, cooling_period_seconds,
                                invitation_registry_id, confirmation_registry_id)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING id
            """,
            ledger.owner,
            config.name,
            config.deposit,
            config.participant_limit,
            int(config.cooling_period.total_seconds()),
            invitation_registry_id,
            confirmation_registry_id,
        )
        assert row is not None
        return int(row["id"])

    async def save_ledger(self, event_id: int, ledger: EventLedger) -> None:
        state = ledger.state
        await self.db.execute(
            """
            UPDATE events
               SET participant_limit = $2,
                   registered_count = $3,
                   attended_count = $4,
                   total_balance = $5,
                   ended = $6,
                   cancelled = $7,
                   ended_at = $8,
                   cleared = $9
             WHERE id = $1
            """,
            event_id,
            ledger.participant_limit,
            state.registered_count,
            state.attended_count,
            state.total_balance,
            state.ended,
            state.cancelled,
            state.ended_at,
            state.cleared,
        )
        participants = ledger.participants()
        if participants:
            await self.db.executemany(
                """
                INSERT INTO participants (event_id, address, display_name, registered, attended, paid_out)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (event_id, address) DO UPDATE
                    SET display_name = EXCLUDED.display_name,
                        registered = EXCLUDED.registered,
                        attended = EXCLUDED.attended,
                        paid_out = EXCLUDED.paid_out
                """,
                (
                    (event_id, p.address, p.display_name, p.registered, p.attended, p.paid_out)
                    for p in participants
                ),
            )

    async def get_event(self, event_id: int) -> asyncpg.Record | None:
        return await self.db.fetchrow("SELECT * FROM events WHERE id = $1", event_id)

    async def get_participant(self, event_id: int, address: Address) -> Participant | None:
        row = await self.db.fetchrow(
            "SELECT * FROM participants WHERE event_id = $1 AND address = $2",
            event_id,
            address,
        )
        return _participant_from_row(row) if row is not None else None

    async def load_ledger(
        self,
        event_id: int,
        *,
        invitations: Optional[CodeConsumer] = None,
        confirmations: Optional[CodeConsumer] = None,
        clock: Clock = utcnow,
        encrypt: Encryptor = sha3_encrypt,
    ) -> EventLedger | None:
        row = await self.get_event(event_id)
        if row is None:
            return None

        config = EventConfig(
            name=row["name"],
            deposit=int(row["deposit"]),
            participant_limit=row["participant_limit"],
            cooling_period=timedelta(seconds=row["cooling_period_seconds"]),
        )
        state = EventState(
            registered_count=row["registered_count"],
            attended_count=row["attended_count"],
            total_balance=int(row["total_balance"]),
            ended=row["ended"],
            cancelled=row["cancelled"],
            ended_at=row["ended_at"],
            cleared=row["cleared"],
        )
        if invitations is None and row["invitation_registry_id"] is not None:
            invitations = await self.load_registry(row["invitation_registry_id"], encrypt=encrypt)
        if confirmations is None and row["confirmation_registry_id"] is not None:
            confirmations = await self.load_registry(row["confirmation_registry_id"], encrypt=encrypt)

        rows = await self.db.fetch("SELECT * FROM participants WHERE event_id = $1", event_id)
        return EventLedger.restore(
            config,
            row["owner"],
            state,
            [_participant_from_row(r) for r in rows],
            invitations=invitations,
            confirmations=confirmations,
            clock=clock,
        )

    async def create_registry(self, kind: RegistryKind, owner: Address) -> int:
        row = await self.db.fetchrow(
            "INSERT INTO code_registries (kind, owner) VALUES ($1, $2) RETURNING id",
            kind.value,
            owner,
        )
        assert row is not None
        return int(row["id"])

    async def save_registry(self, registry_id: int, registry: CodeRegistry) -> None:
        entries = registry.entries()
        if not entries:
            return
        await self.db.executemany(
            """
            INSERT INTO code_entries (registry_id, opaque_code, consumed_by)
            VALUES ($1, $2, $3)
            ON CONFLICT (registry_id, opaque_code) DO UPDATE
                SET consumed_by = COALESCE(code_entries.consumed_by, EXCLUDED.consumed_by)
            """,
            ((registry_id, entry.opaque_code, entry.consumed_by) for entry in entries),
        )

    async def load_registry(self, registry_id: int, encrypt: Encryptor = sha3_encrypt) -> CodeRegistry | None:
        row = await self.db.fetchrow("SELECT * FROM code_registries WHERE id = $1", registry_id)
        if row is None:
            return None
        rows = await self.db.fetch("SELECT * FROM code_entries WHERE registry_id = $1", registry_id)
        registry_cls = REGISTRY_CLASSES.get(RegistryKind(row["kind"]), CodeRegistry)
        entries = [CodeEntry(opaque_code=bytes(r["opaque_code"]), consumed_by=r["consumed_by"]) for r in rows]
        return registry_cls.restore(row["owner"], entries, encrypt=encrypt)


def _participant_from_row(row: Any) -> Participant:
    return Participant(
        address=row["address"],
        display_name=row["display_name"],
        registered=row["registered"],
        attended=row["attended"],
        paid_out=row["paid_out"],
    )

