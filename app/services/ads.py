"""Scheduled interstitial ads stored in the ``ads`` collection."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ..models import Ad
from ..utils import ensure_utc, utc_now
from .documents import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

ADS_COLLECTION = "ads"


class AdService:
    def __init__(self, documents: DocumentStore):
        self._documents = documents

    async def create_ad(self, ad: Ad) -> Ad:
        if ad.end_date < ad.start_date:
            raise ValueError("An ad cannot end before it starts")
        now = utc_now()
        payload = ad.model_copy(update={"created_at": now, "updated_at": now})
        ad_id = await self._documents.add(ADS_COLLECTION, self._to_document(payload))
        return payload.model_copy(update={"id": ad_id})

    async def update_ad(self, ad_id: str, updates: dict[str, Any]) -> Ad:
        current = await self.get_ad(ad_id)
        if current is None:
            raise KeyError(ad_id)
        merged = Ad.model_validate(
            {
                **self._to_document(current),
                **{key: value for key, value in updates.items() if key != "id"},
                "updatedAt": utc_now(),
            }
        )
        if merged.end_date < merged.start_date:
            raise ValueError("An ad cannot end before it starts")
        await self._documents.set(ADS_COLLECTION, ad_id, self._to_document(merged))
        return merged.model_copy(update={"id": ad_id})

    async def delete_ad(self, ad_id: str) -> None:
        await self._documents.delete(ADS_COLLECTION, ad_id)

    async def get_ad(self, ad_id: str) -> Ad | None:
        data = await self._documents.get(ADS_COLLECTION, ad_id)
        if data is None:
            return None
        return self._from_snapshot(DocumentSnapshot(id=ad_id, data=data))

    async def get_all_ads(self) -> list[Ad]:
        snapshots = await self._documents.query(ADS_COLLECTION)
        return [ad for ad in map(self._from_snapshot, snapshots) if ad is not None]

    async def get_active_ad(self, now: datetime | None = None) -> Ad | None:
        """Return the running ad that started most recently, if any."""

        moment = ensure_utc(now) if now is not None else utc_now()
        try:
            snapshots = await self._documents.query(ADS_COLLECTION, {"isActive": True})
        except Exception:
            logger.exception("Unable to load active ads")
            return None
        running = [
            ad
            for ad in map(self._from_snapshot, snapshots)
            if ad is not None and ad.is_running(moment)
        ]
        running.sort(key=lambda ad: ad.start_date, reverse=True)
        return running[0] if running else None

    @staticmethod
    def _from_snapshot(snapshot: DocumentSnapshot) -> Ad | None:
        try:
            return Ad.model_validate({**snapshot.data, "id": snapshot.id})
        except ValidationError:
            logger.warning("Ad document %s is malformed", snapshot.id)
            return None

    @staticmethod
    def _to_document(ad: Ad) -> dict[str, Any]:
        return ad.model_dump(mode="json", by_alias=True, exclude={"id"})
