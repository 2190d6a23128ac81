"""Live, per-user favorites backed by the ``favorites`` collection."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable

from pydantic import ValidationError

from ..models import ContentItem, FavoriteRecord, UserProfile
from ..utils import composed_key
from .documents import DocumentSnapshot, DocumentStore, Subscription
from .session import SessionContext

logger = logging.getLogger(__name__)

FAVORITES_COLLECTION = "favorites"

SnapshotCallback = Callable[[list[FavoriteRecord]], Awaitable[None] | None]


class FavoritesStore:
    """In-memory view of the signed-in user's favorites.

    The snapshot is replaced wholesale whenever the backend reports a change,
    including writes from other sessions; the last server write wins. Without a
    session the snapshot is empty and mutations do nothing.
    """

    def __init__(self, documents: DocumentStore, session: SessionContext):
        self._documents = documents
        self._session = session
        self._snapshot: dict[int, FavoriteRecord] = {}
        self._subscription: Subscription | None = None
        self._bound_uid: str | None = None
        self._listeners: list[SnapshotCallback] = []
        self._unsubscribe_session = session.subscribe(self._on_session_change)
        self.loading = True

    @property
    def favorites(self) -> list[FavoriteRecord]:
        return list(self._snapshot.values())

    def items(self) -> list[ContentItem]:
        return [record.to_content_item() for record in self._snapshot.values()]

    def on_change(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call ``callback`` with the new snapshot after every change."""

        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def start(self) -> None:
        """Attach to the current session's user."""

        await self._bind(self._session.user)

    async def aclose(self) -> None:
        self._unsubscribe_session()
        self._close_subscription()
        self._listeners.clear()

    def is_favorite(self, content_id: int) -> bool:
        return content_id in self._snapshot

    async def add(self, item: ContentItem) -> None:
        user = self._session.user
        if user is None:
            return
        record = FavoriteRecord.from_item(user.uid, item)
        previous = self._snapshot.get(item.id)
        self._snapshot[item.id] = record
        try:
            await self._documents.set(
                FAVORITES_COLLECTION, composed_key(user.uid, item.id), record.to_document()
            )
        except Exception:
            logger.exception("Unable to add favorite %s for %s", item.id, user.uid)
            if previous is None:
                self._snapshot.pop(item.id, None)
            else:
                self._snapshot[item.id] = previous
            raise
        await self._catch_up()

    async def remove(self, content_id: int) -> None:
        user = self._session.user
        if user is None:
            return
        previous = self._snapshot.pop(content_id, None)
        try:
            await self._documents.delete(
                FAVORITES_COLLECTION, composed_key(user.uid, content_id)
            )
        except Exception:
            logger.exception("Unable to remove favorite %s for %s", content_id, user.uid)
            if previous is not None:
                self._snapshot[content_id] = previous
            raise
        await self._catch_up()

    async def _on_session_change(self, user: UserProfile | None) -> None:
        await self._bind(user)

    async def _bind(self, user: UserProfile | None) -> None:
        uid = user.uid if user is not None else None
        if uid == self._bound_uid and (uid is None or self._subscription is not None):
            self.loading = False
            return
        self._close_subscription()
        self._bound_uid = uid
        await self._replace({})
        if uid is None:
            self.loading = False
            return
        self.loading = True
        self._subscription = await self._documents.watch(
            FAVORITES_COLLECTION, {"userId": uid}, self._apply_documents
        )

    async def _apply_documents(self, documents: list[DocumentSnapshot]) -> None:
        snapshot: dict[int, FavoriteRecord] = {}
        for document in documents:
            try:
                record = FavoriteRecord.model_validate(document.data)
            except ValidationError:
                logger.warning("Skipping malformed favorite document %s", document.id)
                continue
            if record.user_id != self._bound_uid:
                continue
            snapshot[record.content_id] = record
        self.loading = False
        await self._replace(snapshot)

    async def _replace(self, snapshot: dict[int, FavoriteRecord]) -> None:
        self._snapshot = snapshot
        records = list(snapshot.values())
        for callback in list(self._listeners):
            result = callback(records)
            if inspect.isawaitable(result):
                await result

    async def _catch_up(self) -> None:
        """Wait for this store's own subscription to see the latest commit."""

        if self._subscription is not None:
            await self._subscription.flush()

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
