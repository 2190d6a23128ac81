"""Pages, ads and contact routing services."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable

import pytest

from app.database import Database
from app.models import Ad, ContactCategory, ContactMessage, EmailConfig, Page
from app.services.ads import AdService
from app.services.contact import ContactService
from app.services.documents import DocumentStore
from app.services.pages import PageService

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def run_with_documents(
    tmp_path: Path, scenario: Callable[[DocumentStore], Awaitable[None]]
) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'backoffice.db'}")
        await database.create_all()
        try:
            await scenario(DocumentStore(database.session_factory))
        finally:
            await database.dispose()

    asyncio.run(runner())


def test_pages_are_slugged_and_filtered_by_location(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        pages = PageService(documents)
        about = await pages.create_page(
            Page(id="", title="À propos", content="Bonjour", location="footer", column="pages")
        )
        await pages.create_page(
            Page(id="cgu", title="CGU", location="footer", column="legal", is_visible=False)
        )
        await pages.create_page(Page(id="films", title="Films", location="navbar"))

        assert about.id == "a-propos"
        assert about.path == "/a-propos"
        assert [page.id for page in await pages.get_pages_by_location("footer")] == ["a-propos"]
        assert [page.id for page in await pages.get_pages_by_location("navbar")] == ["films"]
        assert len(await pages.get_all_pages()) == 3
        assert {page.id for page in await pages.get_visible_pages()} == {"a-propos", "films"}

    run_with_documents(tmp_path, scenario)


def test_visible_page_lookup_by_id_or_path(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        pages = PageService(documents)
        await pages.create_page(Page(id="legal", title="Mentions", path="/mentions-legales"))
        await pages.create_page(Page(id="draft", title="Draft", is_visible=False))

        assert (await pages.get_visible_page("legal")).title == "Mentions"
        assert (await pages.get_visible_page("mentions-legales")).id == "legal"
        assert await pages.get_visible_page("draft") is None
        assert await pages.get_visible_page("missing") is None

    run_with_documents(tmp_path, scenario)


def test_page_updates_merge_and_validate(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        pages = PageService(documents)
        await pages.create_page(Page(id="faq", title="FAQ", content="v1"))

        updated = await pages.update_page_content("faq", "v2")
        assert updated.content == "v2"
        assert updated.title == "FAQ"

        moved = await pages.update_page("faq", {"location": "navbar", "id": "ignored"})
        assert moved.id == "faq"
        assert moved.location == "navbar"

        with pytest.raises(KeyError):
            await pages.update_page("missing", {"title": "x"})
        with pytest.raises(ValueError):
            await pages.update_page("faq", {"location": "sidebar"})

    run_with_documents(tmp_path, scenario)


def test_active_ad_prefers_the_latest_running_window(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        ads = AdService(documents)
        await ads.create_ad(
            Ad(title="Old", start_date=NOW - timedelta(days=10), end_date=NOW + timedelta(days=1))
        )
        newest = await ads.create_ad(
            Ad(title="New", start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1))
        )
        await ads.create_ad(
            Ad(title="Future", start_date=NOW + timedelta(days=1), end_date=NOW + timedelta(days=5))
        )
        await ads.create_ad(
            Ad(
                title="Disabled",
                is_active=False,
                start_date=NOW - timedelta(hours=1),
                end_date=NOW + timedelta(days=1),
            )
        )

        active = await ads.get_active_ad(NOW)
        assert active is not None
        assert active.id == newest.id
        assert active.title == "New"

        await ads.update_ad(newest.id, {"isActive": False})
        assert (await ads.get_active_ad(NOW)).title == "Old"
        assert await ads.get_active_ad(NOW + timedelta(days=30)) is None

    run_with_documents(tmp_path, scenario)


def test_ad_window_must_be_ordered(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        ads = AdService(documents)
        with pytest.raises(ValueError):
            await ads.create_ad(Ad(title="Broken", start_date=NOW, end_date=NOW - timedelta(days=1)))
        created = await ads.create_ad(Ad(title="Ok", start_date=NOW, end_date=NOW))
        with pytest.raises(ValueError):
            await ads.update_ad(created.id, {"endDate": (NOW - timedelta(days=2)).isoformat()})
        await ads.delete_ad(created.id)
        assert await ads.get_ad(created.id) is None

    run_with_documents(tmp_path, scenario)


def test_contact_message_is_routed_to_active_config(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        contact = ContactService(documents)
        support = await contact.create_category(ContactCategory(name="Support"))
        await contact.create_category(ContactCategory(name="Archive", is_active=False))
        await contact.create_email_config(
            EmailConfig(category=support.id, recipient_email="old@example.com", is_active=False)
        )
        await contact.create_email_config(
            EmailConfig(category=support.id, recipient_email="support@example.com")
        )

        assert [category.name for category in await contact.get_categories(active_only=True)] == [
            "Support"
        ]
        stored = await contact.send_contact_message(
            ContactMessage(
                category=support.id,
                name="Ana",
                email="ana@example.com",
                subject="Lecture",
                message="La vidéo ne démarre pas.",
            )
        )

        assert stored.id
        assert stored.status == "pending"
        assert stored.recipient_email == "support@example.com"
        messages = await contact.get_messages()
        assert [message.subject for message in messages] == ["Lecture"]

    run_with_documents(tmp_path, scenario)


def test_contact_message_without_route_is_still_stored(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        contact = ContactService(documents)
        stored = await contact.send_contact_message(
            ContactMessage(
                category="unknown",
                name="Ana",
                email="ana@example.com",
                subject="Hello",
                message="Anyone there?",
            )
        )

        assert stored.recipient_email is None
        assert len(await contact.get_messages()) == 1

    run_with_documents(tmp_path, scenario)


def test_category_and_config_updates(tmp_path) -> None:
    async def scenario(documents: DocumentStore) -> None:
        contact = ContactService(documents)
        category = await contact.create_category(ContactCategory(name="Presse"))
        renamed = await contact.update_category(category.id, {"name": "Press"})
        assert renamed.name == "Press"

        config = await contact.create_email_config(
            EmailConfig(category=category.id, recipient_email="press@example.com")
        )
        updated = await contact.update_email_config(config.id, {"useTLS": False})
        assert updated.use_tls is False

        await contact.delete_email_config(config.id)
        await contact.delete_category(category.id)
        assert await contact.get_email_configs() == []
        assert await contact.get_categories() == []

        with pytest.raises(KeyError):
            await contact.update_category(category.id, {"name": "Gone"})

    run_with_documents(tmp_path, scenario)
