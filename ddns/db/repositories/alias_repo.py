"""Alias repository – CRUD for the alias_records table."""

from __future__ import annotations

import logging

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ddns.models.alias_record import AliasRecord
from ddns.services.errors import AlreadyExists, NotFoundError

logger = logging.getLogger(__name__)


class AliasRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def get_by_alias(self, alias: str) -> AliasRecord | None:
        """Return the stored record for *alias*, or None if unclaimed."""
        result = await self._s.execute(
            select(AliasRecord).where(AliasRecord.alias == alias)
        )
        return result.scalar_one_or_none()

    async def insert_if_absent(
        self, alias: str, public_key: str, secret: str, now: int
    ) -> AliasRecord:
        """Create the record for *alias*; raise ``AlreadyExists`` if one exists.

        Relies on the primary key constraint, so two concurrent claims for
        the same alias cannot both commit.
        """
        record = AliasRecord(
            alias=alias,
            public_key=public_key,
            secret=secret,
            created=now,
            updated=now,
        )
        self._s.add(record)
        try:
            await self._s.commit()
        except IntegrityError as exc:
            await self._s.rollback()
            logger.info("Insert for alias %s lost to an existing record", alias)
            raise AlreadyExists(f"Alias {alias!r} already exists.") from exc
        return record

    async def touch_updated_at(
        self,
        alias: str,
        now: int,
        *,
        public_key: str | None = None,
        secret: str | None = None,
    ) -> AliasRecord:
        """Advance ``updated`` to *now* (never backwards).

        When *public_key* / *secret* are given the write only applies while
        the stored credentials still match them.
        """
        conditions = [AliasRecord.alias == alias]
        if public_key is not None:
            conditions.append(AliasRecord.public_key == public_key)
        if secret is not None:
            conditions.append(AliasRecord.secret == secret)

        result = await self._s.execute(
            update(AliasRecord)
            .where(*conditions)
            .values(
                updated=case(
                    (AliasRecord.updated < now, now),
                    else_=AliasRecord.updated,
                )
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.commit()
        if (result.rowcount or 0) == 0:
            raise NotFoundError(f"Alias {alias!r} not found.")

        record = await self.get_by_alias(alias)
        if record is None:
            raise NotFoundError(f"Alias {alias!r} not found.")
        await self._s.refresh(record)
        return record

    async def delete_if_matches(self, alias: str, public_key: str, secret: str) -> bool:
        """Remove *alias* only while it still holds *public_key* and *secret*."""
        result = await self._s.execute(
            delete(AliasRecord)
            .where(
                AliasRecord.alias == alias,
                AliasRecord.public_key == public_key,
                AliasRecord.secret == secret,
            )
            .execution_options(synchronize_session=False)
        )
        await self._s.commit()
        return (result.rowcount or 0) > 0


class RecordStore:
    """Session-per-call adapter over :class:`AliasRepo`.

    Handed to the lifecycle so each store operation runs in its own short
    transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_by_alias(self, alias: str) -> AliasRecord | None:
        async with self._sessions() as session:
            return await AliasRepo(session).get_by_alias(alias)

    async def insert_if_absent(
        self, alias: str, public_key: str, secret: str, now: int
    ) -> AliasRecord:
        async with self._sessions() as session:
            return await AliasRepo(session).insert_if_absent(
                alias, public_key, secret, now
            )

    async def touch_updated_at(
        self,
        alias: str,
        now: int,
        *,
        public_key: str | None = None,
        secret: str | None = None,
    ) -> AliasRecord:
        async with self._sessions() as session:
            return await AliasRepo(session).touch_updated_at(
                alias, now, public_key=public_key, secret=secret
            )

    async def delete_if_matches(self, alias: str, public_key: str, secret: str) -> bool:
        async with self._sessions() as session:
            return await AliasRepo(session).delete_if_matches(alias, public_key, secret)
