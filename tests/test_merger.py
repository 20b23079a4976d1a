"""Tests for the import merge engine."""

import json

import pytest

from templatestore.env_settings import EnvSettings
from templatestore.errors import ConflictError
from templatestore.services.library.storage import get_imported_packs, load_snapshot
from templatestore.services.packs import ImportOptions, import_pack, parse_pack, plan_import, preview_import
from templatestore.services.packs.merger import (
    FEW_KEYWORDS_WARNING,
    LARGE_PACK_WARNING,
    PREBUILT_TARGET_WARNING,
)
from templatestore.store import CATEGORIES, MemoryStore, TEMPLATES

from conftest import (
    TS,
    FlakyStore,
    ad_category,
    ad_pack,
    category_pack,
    current_values,
    make_category,
    make_template,
)


class TestImportOptions:
    def test_defaults(self):
        options = ImportOptions()
        assert options.strategy == "merge"
        assert options.allow_prebuilt_overwrite is False
        assert options.update_existing is False

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            ImportOptions(strategy="upsert")


class TestMergeCategoryPack:
    @pytest.mark.asyncio
    async def test_existing_template_is_skipped_and_new_one_imported(self, c1_store):
        pack = category_pack("c1", [make_template("t1", label="Changed"), make_template("t3")])
        result = await import_pack(c1_store, json.dumps(pack))

        assert result.templates_imported == 1
        assert result.templates_skipped == 1
        assert result.categories_skipped == 1
        assert result.categories_created == 0
        assert result.errors == []
        assert (await c1_store.get(CATEGORIES, "c1"))["templateCount"] == 3
        assert (await c1_store.get(TEMPLATES, "t1"))["label"] == "Label t1"

        imported = await c1_store.get(TEMPLATES, "t3")
        assert imported["isPrebuilt"] is False
        assert imported["usageCount"] == 0
        assert imported["category"] == "c1"

    @pytest.mark.asyncio
    async def test_update_existing(self, c1_store):
        pack = category_pack("c1", [make_template("t1", body="New body")])
        result = await import_pack(c1_store, pack, ImportOptions(update_existing=True))

        assert result.templates_imported == 1
        assert result.templates_updated == 1
        updated = await c1_store.get(TEMPLATES, "t1")
        assert updated["body"] == "New body"
        assert updated["createdAt"] == TS
        assert updated["updatedAt"] != TS

    @pytest.mark.asyncio
    async def test_update_moving_template_recounts_source_category(self, c1_store):
        await c1_store.put(CATEGORIES, make_category("c2", "Cat Two"))
        pack = category_pack("c2", [make_template("t1", "c2", body="Moved")], name="Cat Two")

        snapshot = await load_snapshot(c1_store)
        plan = plan_import(snapshot, parse_pack(pack), ImportOptions(update_existing=True))
        assert plan.source_categories == ("c1",)

        result = await import_pack(c1_store, pack, ImportOptions(update_existing=True))

        assert result.templates_updated == 1
        assert (await c1_store.get(TEMPLATES, "t1"))["category"] == "c2"
        assert (await c1_store.get(CATEGORIES, "c1"))["templateCount"] == 1
        assert (await c1_store.get(CATEGORIES, "c2"))["templateCount"] == 1

    @pytest.mark.asyncio
    async def test_new_category_keeps_pack_id(self, c1_store):
        pack = category_pack("c2", [make_template("t5", "c2")], name="Second")
        result = await import_pack(c1_store, pack)

        assert result.categories_created == 1
        created = await c1_store.get(CATEGORIES, "c2")
        assert created["name"] == "Second"
        assert created["isPrebuilt"] is False
        assert created["templateCount"] == 1

    @pytest.mark.asyncio
    async def test_category_written_before_its_templates(self, c1_store):
        await import_pack(c1_store, category_pack("c2", [make_template("t5", "c2"), make_template("t6", "c2")]))
        puts = [entry for entry in c1_store.journal if entry[0] == "put"]
        assert puts[0] == ("put", CATEGORIES, "c2")

    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, c1_store):
        pack = category_pack("c1", [make_template("t3")])
        await import_pack(c1_store, pack)
        again = await import_pack(c1_store, pack)
        assert again.templates_imported == 0
        assert again.templates_skipped == 1


class TestPrebuiltProtection:
    @pytest.mark.asyncio
    async def test_conflict_aborts_before_any_write(self, mixed_store):
        pack = category_pack("p1", [make_template("new1", "p1")], name="Real Estate")
        with pytest.raises(ConflictError):
            await import_pack(mixed_store, pack)
        assert mixed_store.journal == []

    @pytest.mark.asyncio
    async def test_conflict_under_replace_strategy(self, mixed_store):
        pack = ad_pack([ad_category("real estate", ["Open House"])])
        with pytest.raises(ConflictError):
            await import_pack(mixed_store, pack, ImportOptions(strategy="replace"))
        assert mixed_store.journal == []

    @pytest.mark.asyncio
    async def test_override_flag_allows_import(self, mixed_store):
        pack = category_pack("p1", [make_template("new1", "p1")], name="Real Estate")
        result = await import_pack(mixed_store, pack, ImportOptions(allow_prebuilt_overwrite=True))

        assert result.templates_imported == 1
        category = await mixed_store.get(CATEGORIES, "p1")
        assert category["isPrebuilt"] is True
        assert category["templateCount"] == 4

    @pytest.mark.asyncio
    async def test_prebuilt_template_is_not_updated(self, mixed_store):
        pack = category_pack("u1", [make_template("pt1", "u1", body="Hijack")], name="User One")
        result = await import_pack(mixed_store, pack, ImportOptions(update_existing=True))

        assert result.templates_skipped == 1
        assert (await mixed_store.get(TEMPLATES, "pt1"))["body"] == "Body of pt1"
        assert any("pre-built" in w for w in result.warnings)


class TestReplaceStrategy:
    @pytest.mark.asyncio
    async def test_purges_user_data_and_keeps_prebuilt(self, mixed_store):
        prebuilt_before = {t["id"]: t for t in await mixed_store.list_by_index(TEMPLATES, "isPrebuilt", True)}
        pack = ad_pack([ad_category("Fresh Start", ["One", "Two"])])

        result = await import_pack(mixed_store, pack, ImportOptions(strategy="replace"))

        assert result.templates_deleted == 5
        assert result.categories_deleted == 2
        assert result.categories_created == 1
        assert result.templates_imported == 2

        templates = await mixed_store.list_all(TEMPLATES)
        prebuilt_after = {t["id"]: t for t in templates if t["isPrebuilt"]}
        assert prebuilt_after == prebuilt_before
        assert len(templates) == 5

        category_ids = {c["id"] for c in await mixed_store.list_all(CATEGORIES)}
        assert "u1" not in category_ids and "u2" not in category_ids
        assert "p1" in category_ids

        touched = {key for op, store, key in mixed_store.journal if store == TEMPLATES}
        assert touched.isdisjoint(prebuilt_before)

    @pytest.mark.asyncio
    async def test_category_pack_reuses_purged_ids(self, mixed_store):
        pack = category_pack("u1", [make_template("ut1", "u1", body="Fresh")], name="User One")
        result = await import_pack(mixed_store, pack, ImportOptions(strategy="replace"))

        assert result.templates_imported == 1
        assert result.categories_created == 1
        assert (await mixed_store.get(TEMPLATES, "ut1"))["body"] == "Fresh"
        assert await mixed_store.get(TEMPLATES, "ut2") is None


class TestAdPackMerge:
    @pytest.mark.asyncio
    async def test_matches_by_name_and_label_case_insensitively(self):
        store = MemoryStore(
            records={
                CATEGORIES: [make_category("re", "Real Estate", count=1)],
                TEMPLATES: [make_template("h1", "re", label="Open House")],
            },
            values=current_values(),
        )
        pack = ad_pack([ad_category("real estate", ["OPEN HOUSE", "Price Drop"])])
        result = await import_pack(store, pack)

        assert result.categories_skipped == 1
        assert result.templates_skipped == 1
        assert result.templates_imported == 1

        templates = await store.list_by_index(TEMPLATES, "category", "re")
        new = next(t for t in templates if t["id"] != "h1")
        assert new["id"].startswith("tpl_")
        assert new["label"] == "Price Drop"
        assert new["body"] == "Content for Price Drop"
        assert (await store.get(CATEGORIES, "re"))["templateCount"] == 2

    @pytest.mark.asyncio
    async def test_new_category_gets_generated_id(self, c1_store):
        result = await import_pack(c1_store, ad_pack([ad_category("Cars", ["Sale"])]))
        assert result.categories_created == 1
        created = next(c for c in await c1_store.list_all(CATEGORIES) if c["name"] == "Cars")
        assert created["id"].startswith("cat_")

    @pytest.mark.asyncio
    async def test_duplicate_labels_inside_pack(self, c1_store):
        result = await import_pack(c1_store, ad_pack([ad_category("Cars", ["Sale", "sale "])]))
        assert result.templates_imported == 1
        assert result.templates_skipped == 1

    @pytest.mark.asyncio
    async def test_categories_differing_by_case_are_folded(self, c1_store):
        pack = ad_pack([
            ad_category("Homes", ["Open House"], category_id="x1"),
            ad_category("homes", ["Price Drop", "open house"], category_id="x2"),
        ])
        result = await import_pack(c1_store, pack)

        assert result.categories_created == 1
        assert result.templates_imported == 2
        assert result.templates_skipped == 1

        homes = [c for c in await c1_store.list_all(CATEGORIES) if c["name"].casefold() == "homes"]
        assert len(homes) == 1
        assert homes[0]["name"] == "Homes"
        assert homes[0]["templateCount"] == 2

    @pytest.mark.asyncio
    async def test_records_pack_metadata(self, c1_store):
        await import_pack(c1_store, ad_pack([ad_category("Cars", ["Sale", "Rent"])]))
        history = await get_imported_packs(c1_store)

        assert len(history) == 1
        entry = history[0]
        assert entry["packId"] == "pack_1"
        assert entry["name"] == "Starter Pack"
        assert entry["niche"] == "real-estate"
        assert entry["categoriesImported"] == 1
        assert entry["templatesImported"] == 2
        assert "importedAt" in entry


class TestBestEffort:
    @pytest.mark.asyncio
    async def test_template_write_error_is_collected(self):
        store = FlakyStore(
            records={CATEGORIES: [make_category("c1", "Cat One")]},
            values=current_values(),
            fail_ids={"t3"},
        )
        pack = category_pack("c1", [make_template("t3"), make_template("t4")])
        result = await import_pack(store, pack)

        assert result.templates_imported == 1
        assert len(result.errors) == 1
        assert "Label t3" in result.errors[0]
        assert result.success is False
        assert await store.get(TEMPLATES, "t4") is not None
        assert (await store.get(CATEGORIES, "c1"))["templateCount"] == 1

    @pytest.mark.asyncio
    async def test_category_write_error_skips_its_templates(self):
        store = FlakyStore(values=current_values(), fail_ids={"c9"})
        result = await import_pack(store, category_pack("c9", [make_template("t1", "c9")]))

        assert result.categories_created == 0
        assert result.templates_imported == 0
        assert len(result.errors) == 1
        assert await store.get(TEMPLATES, "t1") is None

    def test_result_to_dict(self):
        from templatestore.services.packs import ImportResult

        assert ImportResult().to_dict()["success"] is True
        assert set(ImportResult().to_dict()) >= {
            "categoriesCreated", "categoriesSkipped", "templatesImported", "templatesSkipped", "errors", "warnings",
        }


class TestPlanAndPreview:
    @pytest.mark.asyncio
    async def test_plan_does_not_write(self, c1_store):
        snapshot = await load_snapshot(c1_store)
        plan = plan_import(snapshot, parse_pack(category_pack("c1", [make_template("t1"), make_template("t3")])))

        assert plan.count("create") == 1
        assert plan.count("skip") == 1
        assert c1_store.journal == []

    @pytest.mark.asyncio
    async def test_preview_warnings(self, mixed_store):
        env = EnvSettings(large_pack_threshold=1, min_average_keywords=3)
        templates = [make_template("pt1", "p1", keywords=["a"]), make_template("n1", "p1", keywords=[])]
        pack = category_pack("p1", templates, name="Real Estate")

        preview = await preview_import(mixed_store, pack, env=env)

        assert mixed_store.journal == []
        assert preview.templates_new == 1
        assert preview.templates_duplicate == 1
        assert PREBUILT_TARGET_WARNING in preview.warnings
        assert "1 templates already exist and will be skipped by default" in preview.warnings
        assert LARGE_PACK_WARNING in preview.warnings
        assert FEW_KEYWORDS_WARNING in preview.warnings
        assert any("cannot be imported into" in w for w in preview.warnings)

    @pytest.mark.asyncio
    async def test_preview_replace_counts_deletions(self, mixed_store):
        preview = await preview_import(
            mixed_store,
            ad_pack([ad_category("Cars", ["Sale"])]),
            ImportOptions(strategy="replace"),
            env=EnvSettings(),
        )
        assert preview.templates_to_delete == 5
        assert preview.categories_new == 1
        assert preview.to_dict()["strategy"] == "replace"
        assert preview.warnings == []
