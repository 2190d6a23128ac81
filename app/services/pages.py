"""Static informational pages stored in the ``pages`` collection."""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import ValidationError

from ..models import Page
from ..utils import slugify, utc_now
from .documents import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

PAGES_COLLECTION = "pages"


class PageService:
    def __init__(self, documents: DocumentStore):
        self._documents = documents

    async def create_page(self, page: Page) -> Page:
        page_id = page.id.strip() or slugify(page.title)
        stored = page.model_copy(
            update={
                "id": page_id,
                "path": page.path or f"/{page_id}",
                "last_modified": utc_now(),
            }
        )
        await self._documents.set(PAGES_COLLECTION, page_id, self._to_document(stored))
        return stored

    async def update_page(self, page_id: str, updates: dict[str, Any]) -> Page:
        """Merge camelCase ``updates`` into a page; raises ``KeyError`` if missing."""

        current = await self._documents.get(PAGES_COLLECTION, page_id)
        if current is None:
            raise KeyError(page_id)
        page = Page.model_validate(
            {
                **current,
                **{key: value for key, value in updates.items() if key != "id"},
                "id": page_id,
                "lastModified": utc_now(),
            }
        )
        await self._documents.set(PAGES_COLLECTION, page_id, self._to_document(page))
        return page

    async def update_page_content(self, page_id: str, content: str) -> Page:
        return await self.update_page(page_id, {"content": content})

    async def get_page(self, page_id: str) -> Page | None:
        data = await self._documents.get(PAGES_COLLECTION, page_id)
        if data is None:
            return None
        return self._from_snapshot(DocumentSnapshot(id=page_id, data=data))

    async def get_visible_page(self, slug: str) -> Page | None:
        """Resolve a public slug against page ids first, then page paths."""

        page = await self.get_page(slug)
        if page is None:
            wanted = f"/{slug.strip('/')}"
            page = next(
                (candidate for candidate in await self.get_all_pages() if candidate.path == wanted),
                None,
            )
        if page is None or not page.is_visible:
            return None
        return page

    async def get_all_pages(self) -> list[Page]:
        return self._from_snapshots(await self._documents.query(PAGES_COLLECTION))

    async def get_visible_pages(self) -> list[Page]:
        return self._from_snapshots(
            await self._documents.query(PAGES_COLLECTION, {"isVisible": True})
        )

    async def get_pages_by_location(self, location: Literal["navbar", "footer"]) -> list[Page]:
        try:
            snapshots = await self._documents.query(
                PAGES_COLLECTION, {"location": location, "isVisible": True}
            )
        except Exception:
            logger.exception("Unable to list %s pages", location)
            return []
        return self._from_snapshots(snapshots)

    def _from_snapshots(self, snapshots: list[DocumentSnapshot]) -> list[Page]:
        pages = [self._from_snapshot(snapshot) for snapshot in snapshots]
        return [page for page in pages if page is not None]

    @staticmethod
    def _from_snapshot(snapshot: DocumentSnapshot) -> Page | None:
        try:
            return Page.model_validate({**snapshot.data, "id": snapshot.id})
        except ValidationError:
            logger.warning("Page document %s is malformed", snapshot.id)
            return None

    @staticmethod
    def _to_document(page: Page) -> dict[str, Any]:
        return page.model_dump(mode="json", by_alias=True)
