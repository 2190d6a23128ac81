"""Contact categories, email routing rules and submitted messages."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import ValidationError

from ..models import CamelModel, ContactCategory, ContactMessage, EmailConfig
from ..utils import utc_now
from .documents import DocumentStore

logger = logging.getLogger(__name__)

CATEGORIES_COLLECTION = "contactCategories"
EMAIL_CONFIGS_COLLECTION = "emailConfigs"
MESSAGES_COLLECTION = "contactMessages"

ModelT = TypeVar("ModelT", bound=CamelModel)


class ContactService:
    def __init__(self, documents: DocumentStore):
        self._documents = documents

    async def get_categories(self, *, active_only: bool = False) -> list[ContactCategory]:
        where = {"isActive": True} if active_only else None
        return await self._list(CATEGORIES_COLLECTION, ContactCategory, where)

    async def create_category(self, category: ContactCategory) -> ContactCategory:
        return await self._create(CATEGORIES_COLLECTION, category)

    async def update_category(self, category_id: str, updates: dict[str, Any]) -> ContactCategory:
        return await self._update(CATEGORIES_COLLECTION, ContactCategory, category_id, updates)

    async def delete_category(self, category_id: str) -> None:
        await self._documents.delete(CATEGORIES_COLLECTION, category_id)

    async def get_email_configs(self) -> list[EmailConfig]:
        return await self._list(EMAIL_CONFIGS_COLLECTION, EmailConfig)

    async def create_email_config(self, config: EmailConfig) -> EmailConfig:
        return await self._create(EMAIL_CONFIGS_COLLECTION, config)

    async def update_email_config(self, config_id: str, updates: dict[str, Any]) -> EmailConfig:
        return await self._update(EMAIL_CONFIGS_COLLECTION, EmailConfig, config_id, updates)

    async def delete_email_config(self, config_id: str) -> None:
        await self._documents.delete(EMAIL_CONFIGS_COLLECTION, config_id)

    async def resolve_recipient(self, category: str) -> str | None:
        """Return the mailbox of the first active routing rule for ``category``."""

        configs = await self._list(
            EMAIL_CONFIGS_COLLECTION,
            EmailConfig,
            {"category": category, "isActive": True},
        )
        return configs[0].recipient_email if configs else None

    async def send_contact_message(self, message: ContactMessage) -> ContactMessage:
        """Queue a message for delivery with status ``pending``."""

        recipient = await self.resolve_recipient(message.category)
        if recipient is None:
            logger.warning("No active email route for contact category %s", message.category)
        queued = message.model_copy(
            update={"status": "pending", "recipient_email": recipient}
        )
        return await self._create(MESSAGES_COLLECTION, queued)

    async def get_messages(self) -> list[ContactMessage]:
        return await self._list(MESSAGES_COLLECTION, ContactMessage)

    async def _list(
        self,
        collection: str,
        model: type[ModelT],
        where: dict[str, Any] | None = None,
    ) -> list[ModelT]:
        items: list[ModelT] = []
        for snapshot in await self._documents.query(collection, where):
            try:
                items.append(model.model_validate({**snapshot.data, "id": snapshot.id}))
            except ValidationError:
                logger.warning("Skipping malformed %s document %s", collection, snapshot.id)
        return items

    async def _create(self, collection: str, item: ModelT) -> ModelT:
        now = utc_now()
        stamped = item.model_copy(update={"created_at": now, "updated_at": now})
        key = await self._documents.add(
            collection, stamped.model_dump(mode="json", by_alias=True, exclude={"id"})
        )
        return stamped.model_copy(update={"id": key})

    async def _update(
        self,
        collection: str,
        model: type[ModelT],
        item_id: str,
        updates: dict[str, Any],
    ) -> ModelT:
        current = await self._documents.get(collection, item_id)
        if current is None:
            raise KeyError(item_id)
        merged = model.model_validate(
            {
                **current,
                **{key: value for key, value in updates.items() if key != "id"},
                "id": item_id,
                "updatedAt": utc_now(),
            }
        )
        await self._documents.set(
            collection, item_id, merged.model_dump(mode="json", by_alias=True, exclude={"id"})
        )
        return merged
