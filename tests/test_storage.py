"""Tests for typed library operations over a store."""

import pytest

from templatestore.errors import ConflictError, NotFoundError, StorageError, ValidationError
from templatestore.services.library.storage import (
    delete_category,
    delete_template,
    get_category,
    get_settings,
    list_categories,
    list_templates,
    load_snapshot,
    recount_categories,
    record_template_usage,
    save_category,
    save_settings,
    save_template,
)
from templatestore.store import CATEGORIES, MemoryStore, TEMPLATES

from conftest import TS, make_category, make_template


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_lookup_helpers(self, mixed_store):
        snapshot = await load_snapshot(mixed_store)
        assert len(snapshot.categories) == 3
        assert snapshot.category_by_name("  real ESTATE ").id == "p1"
        assert snapshot.category_by_id("missing") is None
        assert [t.id for t in snapshot.templates_in("u2")] == ["ut4", "ut5"]
        assert snapshot.template_by_id("pt1").is_prebuilt is True

    @pytest.mark.asyncio
    async def test_malformed_record_raises_storage_error(self):
        store = MemoryStore(records={TEMPLATES: [{"id": "old1", "label": "Old", "template": "Hello there"}]})
        with pytest.raises(StorageError):
            await load_snapshot(store)


class TestTemplates:
    @pytest.mark.asyncio
    async def test_save_template_recounts(self, c1_store):
        await save_template(c1_store, {"id": "t3", "label": "Third", "category": "c1", "body": "Hello"})
        assert (await get_category(c1_store, "c1")).template_count == 3
        assert len(await list_templates(c1_store, "c1")) == 3

    @pytest.mark.asyncio
    async def test_moving_template_recounts_both_categories(self, c1_store):
        await save_category(c1_store, make_category("c2", "Cat Two"))
        await save_template(c1_store, make_template("t1", "c2"))
        assert (await get_category(c1_store, "c1")).template_count == 1
        assert (await get_category(c1_store, "c2")).template_count == 1

    @pytest.mark.asyncio
    async def test_invalid_template_is_rejected(self, c1_store):
        with pytest.raises(ValidationError):
            await save_template(c1_store, {"id": "t3", "label": "", "body": "x"})
        assert c1_store.journal == []

    @pytest.mark.asyncio
    async def test_delete_template(self, c1_store):
        deleted = await delete_template(c1_store, "t1")
        assert deleted.id == "t1"
        assert (await get_category(c1_store, "c1")).template_count == 1
        with pytest.raises(NotFoundError):
            await delete_template(c1_store, "t1")

    @pytest.mark.asyncio
    async def test_record_usage(self, c1_store):
        used = await record_template_usage(c1_store, "t1")
        assert used.usage_count == 1
        assert used.updated_at != TS
        assert (await c1_store.get(TEMPLATES, "t1"))["usageCount"] == 1


class TestCategories:
    @pytest.mark.asyncio
    async def test_prebuilt_category_is_protected(self, mixed_store):
        with pytest.raises(ConflictError):
            await delete_category(mixed_store, "p1")
        warnings = await delete_category(mixed_store, "p1", force=True)
        assert warnings == ["3 templates still reference deleted category 'p1'"]

    @pytest.mark.asyncio
    async def test_delete_missing_category(self):
        with pytest.raises(NotFoundError):
            await delete_category(MemoryStore(), "nope")

    @pytest.mark.asyncio
    async def test_list_by_prebuilt(self, mixed_store):
        assert [c.id for c in await list_categories(mixed_store, prebuilt=True)] == ["p1"]
        assert len(await list_categories(mixed_store)) == 3

    @pytest.mark.asyncio
    async def test_recount_writes_only_changed_categories(self, mixed_store):
        await mixed_store.delete(TEMPLATES, "ut1")
        mixed_store.journal.clear()

        counts = await recount_categories(mixed_store)

        assert counts == {"u1": 2, "u2": 2, "p1": 3}
        assert mixed_store.journal == [("put", CATEGORIES, "u1")]


class TestSettings:
    @pytest.mark.asyncio
    async def test_defaults_when_missing(self):
        settings = await get_settings(MemoryStore())
        assert settings.onboarding_completed is False
        assert settings.templates.max_suggestions == 3

    @pytest.mark.asyncio
    async def test_save_settings_validates(self):
        store = MemoryStore()
        with pytest.raises(ValidationError):
            await save_settings(store, {"ui": {"sidebarWidth": 9000}})
        saved = await save_settings(store, {"ui": {"theme": "dark"}, "onboardingCompleted": True})
        assert saved.ui.theme == "dark"
        assert (await get_settings(store)).onboarding_completed is True
