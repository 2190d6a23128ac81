"""Collection/document storage with live query subscriptions."""

from __future__ import annotations

import asyncio
import inspect
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy import ColumnElement, Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import DocumentRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentSnapshot:
    """A document key together with its JSON payload."""

    id: str
    data: dict[str, Any]


SnapshotListener = Callable[[list[DocumentSnapshot]], Awaitable[None] | None]


@dataclass(slots=True, eq=False)
class Subscription:
    """Handle for a live query; ``close`` stops further deliveries.

    Snapshots are queued and handed to the listener by a per-subscription
    task in commit order, so a slow listener only delays itself.
    """

    store: "DocumentStore"
    collection: str
    where: dict[str, Any]
    listener: SnapshotListener
    active: bool = field(default=True)
    _pending: asyncio.Queue[list[DocumentSnapshot]] = field(
        default_factory=asyncio.Queue, init=False, repr=False
    )
    _worker: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self.store._detach(self)
        while not self._pending.empty():
            self._pending.get_nowait()
            self._pending.task_done()
        if self._worker is not None and self._worker is not asyncio.current_task():
            self._worker.cancel()

    def enqueue(self, documents: list[DocumentSnapshot]) -> None:
        if not self.active:
            return
        self._pending.put_nowait(documents)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    async def flush(self) -> None:
        """Wait until every queued snapshot has reached the listener."""

        await self._pending.join()

    async def deliver(self, documents: list[DocumentSnapshot]) -> None:
        if not self.active:
            return
        try:
            result = self.listener(documents)
            if inspect.isawaitable(result):
                await result
        except Exception:  # pragma: no cover - listener bugs must not break writers
            logger.exception("Snapshot listener failed for %s", self.collection)

    async def _drain(self) -> None:
        while not self._pending.empty():
            documents = self._pending.get_nowait()
            try:
                await self.deliver(documents)
            finally:
                self._pending.task_done()


def _field_condition(name: str, value: Any) -> ColumnElement[bool] | None:
    """Translate one equality predicate into SQL, or ``None`` when it cannot be."""

    element = DocumentRecord.data[name]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    return None


class DocumentStore:
    """Document-store facade over the ``documents`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._watchers: dict[str, list[Subscription]] = {}

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            record = await self._load(session, collection, key)
            return dict(record.data) if record is not None else None

    async def set(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        """Create or replace the document stored under ``key``."""

        async with self._session_factory() as session:
            record = await self._load(session, collection, key)
            if record is None:
                session.add(DocumentRecord(collection=collection, key=key, data=dict(data)))
            else:
                record.data = dict(data)
            await session.commit()
        await self._notify(collection)

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Store ``data`` under a generated key and return the key."""

        key = secrets.token_hex(10)
        await self.set(collection, key, data)
        return key

    async def update(self, collection: str, key: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into an existing document."""

        async with self._session_factory() as session:
            record = await self._load(session, collection, key)
            if record is None:
                raise KeyError(f"{collection}/{key} does not exist")
            record.data = {**record.data, **changes}
            await session.commit()
        await self._notify(collection)

    async def delete(self, collection: str, key: str) -> bool:
        """Remove a document; missing documents are ignored."""

        async with self._session_factory() as session:
            result = await session.execute(
                delete(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.key == key,
                )
            )
            await session.commit()
        removed = bool(result.rowcount)
        if removed:
            await self._notify(collection)
        return removed

    async def query(
        self, collection: str, where: Mapping[str, Any] | None = None
    ) -> list[DocumentSnapshot]:
        """Return documents whose fields equal every value in ``where``.

        Scalar predicates are evaluated by the database; the rest are checked
        on the rows it returns.
        """

        conditions = dict(where or {})
        async with self._session_factory() as session:
            result = await session.execute(self.query_statement(collection, conditions))
            records = result.scalars().all()
        return [
            DocumentSnapshot(id=record.key, data=dict(record.data))
            for record in records
            if all(record.data.get(name) == value for name, value in conditions.items())
        ]

    @staticmethod
    def query_statement(
        collection: str, where: Mapping[str, Any] | None = None
    ) -> Select[tuple[DocumentRecord]]:
        statement = select(DocumentRecord).where(DocumentRecord.collection == collection)
        for name, value in (where or {}).items():
            condition = _field_condition(name, value)
            if condition is not None:
                statement = statement.where(condition)
        return statement.order_by(DocumentRecord.id)

    async def watch(
        self,
        collection: str,
        where: Mapping[str, Any] | None,
        listener: SnapshotListener,
    ) -> Subscription:
        """Subscribe to a query and receive its current result before returning."""

        subscription = Subscription(
            store=self,
            collection=collection,
            where=dict(where or {}),
            listener=listener,
        )
        self._watchers.setdefault(collection, []).append(subscription)
        subscription.enqueue(await self.query(collection, subscription.where))
        await subscription.flush()
        return subscription

    def watcher_count(self, collection: str) -> int:
        return len(self._watchers.get(collection, []))

    async def settle(self) -> None:
        """Wait for every queued snapshot to reach its listener."""

        for watchers in list(self._watchers.values()):
            for subscription in list(watchers):
                await subscription.flush()

    def close(self) -> None:
        for watchers in list(self._watchers.values()):
            for subscription in list(watchers):
                subscription.close()

    def _detach(self, subscription: Subscription) -> None:
        watchers = self._watchers.get(subscription.collection, [])
        if subscription in watchers:
            watchers.remove(subscription)
        if not watchers:
            self._watchers.pop(subscription.collection, None)

    async def _notify(self, collection: str) -> None:
        watchers = list(self._watchers.get(collection, []))
        results: dict[str, list[DocumentSnapshot]] = {}
        for subscription in watchers:
            # Subscriptions sharing a predicate share one query.
            cache_key = repr(sorted(subscription.where.items()))
            if cache_key not in results:
                results[cache_key] = await self.query(collection, subscription.where)
            subscription.enqueue(
                [
                    DocumentSnapshot(id=document.id, data=dict(document.data))
                    for document in results[cache_key]
                ]
            )

    @staticmethod
    async def _load(
        session: AsyncSession, collection: str, key: str
    ) -> DocumentRecord | None:
        result = await session.execute(
            select(DocumentRecord).where(
                DocumentRecord.collection == collection,
                DocumentRecord.key == key,
            )
        )
        return result.scalar_one_or_none()
