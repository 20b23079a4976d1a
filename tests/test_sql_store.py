"""Tests for the SQLite store."""

import pytest

from templatestore.errors import StorageError
from templatestore.services.migration import SchemaMigrator
from templatestore.services.packs import ImportOptions, import_pack
from templatestore.store import CATEGORIES, SETTINGS_KEY, STORAGE_VERSION_KEY, SqlStore, TEMPLATES

from conftest import ad_category, ad_pack, make_category, make_template


@pytest.fixture
def sql_store(tmp_path):
    store = SqlStore.from_path(str(tmp_path / "library.db"))
    yield store
    store.engine.dispose()


class TestRecords:
    @pytest.mark.asyncio
    async def test_put_get_delete(self, sql_store):
        record = make_template("t1", label="Grüße")
        await sql_store.put(TEMPLATES, record)
        assert await sql_store.get(TEMPLATES, "t1") == record

        await sql_store.put(TEMPLATES, {**record, "body": "Updated"})
        assert (await sql_store.get(TEMPLATES, "t1"))["body"] == "Updated"

        await sql_store.delete(TEMPLATES, "t1")
        assert await sql_store.get(TEMPLATES, "t1") is None
        await sql_store.delete(TEMPLATES, "t1")

    @pytest.mark.asyncio
    async def test_indexes(self, sql_store):
        await sql_store.put(CATEGORIES, make_category("c1", "Cat One"))
        await sql_store.put(CATEGORIES, make_category("p1", "Built In", prebuilt=True))
        for template in (make_template("t1"), make_template("t2", "c2"), make_template("b1", prebuilt=True)):
            await sql_store.put(TEMPLATES, template)

        assert [t["id"] for t in await sql_store.list_by_index(TEMPLATES, "category", "c1")] == ["b1", "t1"]
        assert [t["id"] for t in await sql_store.list_by_index(TEMPLATES, "isPrebuilt", True)] == ["b1"]
        assert [c["id"] for c in await sql_store.list_by_index(CATEGORIES, "name", "Built In")] == ["p1"]
        assert len(await sql_store.list_all(TEMPLATES)) == 3

    @pytest.mark.asyncio
    async def test_stores_do_not_share_ids(self, sql_store):
        await sql_store.put(TEMPLATES, make_template("x"))
        await sql_store.put(CATEGORIES, make_category("x"))
        assert (await sql_store.get(TEMPLATES, "x"))["body"] == "Body of x"
        assert (await sql_store.get(CATEGORIES, "x"))["name"] == "Category x"

    @pytest.mark.asyncio
    async def test_unknown_store_or_index(self, sql_store):
        with pytest.raises(StorageError):
            await sql_store.list_all("widgets")
        with pytest.raises(StorageError):
            await sql_store.list_by_index(TEMPLATES, "label", "x")
        with pytest.raises(StorageError):
            await sql_store.put(TEMPLATES, {"label": "no id"})


class TestKeyValues:
    @pytest.mark.asyncio
    async def test_set_get_remove(self, sql_store):
        await sql_store.set_values({SETTINGS_KEY: {"ui": {"theme": "dark"}}, STORAGE_VERSION_KEY: 2})
        assert await sql_store.get_values([SETTINGS_KEY, "missing"]) == {SETTINGS_KEY: {"ui": {"theme": "dark"}}}
        assert await sql_store.get_value(STORAGE_VERSION_KEY) == 2

        await sql_store.remove_values([STORAGE_VERSION_KEY])
        assert await sql_store.get_value(STORAGE_VERSION_KEY, "gone") == "gone"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_migrate_then_import(self, tmp_path):
        path = str(tmp_path / "library.db")
        store = SqlStore.from_path(path)
        await store.put(TEMPLATES, {"id": "t1", "label": "Greeting", "template": "Hey", "variants": ["Hi"]})

        report = await SchemaMigrator().run(store)
        assert report.variants_created == 1

        result = await import_pack(store, ad_pack([ad_category("Cars", ["Sale", "Rent"])]), ImportOptions())
        assert result.templates_imported == 2
        await store.close()

        reopened = SqlStore.from_path(path)
        assert await reopened.get_value(STORAGE_VERSION_KEY) == 2
        assert len(await reopened.list_all(TEMPLATES)) == 4
        await reopened.close()

    @pytest.mark.asyncio
    async def test_in_memory_database(self):
        store = SqlStore.from_path(":memory:")
        await store.put(CATEGORIES, make_category("c1"))
        assert (await store.get(CATEGORIES, "c1"))["id"] == "c1"
        await store.close()
