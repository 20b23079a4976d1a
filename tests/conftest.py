"""Shared fixtures and record builders."""

from __future__ import annotations

from typing import Any

import pytest

from templatestore.env_settings import EnvSettings
from templatestore.errors import StorageError
from templatestore.services.library.schema import default_settings
from templatestore.store import (
    AD_PACK_METADATA_KEY,
    CATEGORIES,
    KEYWORD_STATS_KEY,
    MemoryStore,
    SETTINGS_KEY,
    STORAGE_VERSION_KEY,
    TEMPLATES,
)

TS = "2025-01-01T00:00:00.000Z"


def make_template(
    template_id: str,
    category: str = "c1",
    *,
    label: str | None = None,
    body: str | None = None,
    keywords: list[str] | None = None,
    prebuilt: bool = False,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "id": template_id,
        "label": label or f"Label {template_id}",
        "category": category,
        "keywords": ["alpha", "beta", "gamma"] if keywords is None else keywords,
        "body": body or f"Body of {template_id}",
        "isPrebuilt": prebuilt,
        "createdAt": TS,
        "updatedAt": TS,
        "usageCount": 0,
        **extra,
    }


def make_category(
    category_id: str,
    name: str | None = None,
    *,
    prebuilt: bool = False,
    count: int = 0,
    description: str = "",
) -> dict[str, Any]:
    return {
        "id": category_id,
        "name": name or f"Category {category_id}",
        "description": description,
        "isPrebuilt": prebuilt,
        "templateCount": count,
        "createdAt": TS,
    }


def current_values() -> dict[str, Any]:
    """Key-value area of a generation 2 store."""
    return {
        SETTINGS_KEY: default_settings(onboarding_completed=True),
        KEYWORD_STATS_KEY: {},
        AD_PACK_METADATA_KEY: [],
        STORAGE_VERSION_KEY: 2,
    }


class FlakyStore(MemoryStore):
    """MemoryStore whose `put` fails for selected record ids."""

    def __init__(self, *args, fail_ids: set[str] = frozenset(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_ids = set(fail_ids)

    async def put(self, store, record):
        if record.get("id") in self.fail_ids:
            raise StorageError(f"disk full while writing {record.get('id')}")
        await super().put(store, record)


class BrokenStore(MemoryStore):
    """MemoryStore whose key-value reads always fail."""

    async def get_values(self, keys):
        raise StorageError("store unavailable")


@pytest.fixture
def env(tmp_path) -> EnvSettings:
    return EnvSettings(
        sqlite_path=str(tmp_path / "library.db"),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def c1_store() -> MemoryStore:
    """Generation 2 store: user category c1 holding t1 and t2."""
    return MemoryStore(
        records={
            CATEGORIES: [make_category("c1", "Cat One", count=2)],
            TEMPLATES: [make_template("t1"), make_template("t2")],
        },
        values=current_values(),
    )


@pytest.fixture
def mixed_store() -> MemoryStore:
    """2 user categories / 5 user templates plus 1 pre-built category / 3 pre-built templates."""
    return MemoryStore(
        records={
            CATEGORIES: [
                make_category("u1", "User One", count=3),
                make_category("u2", "User Two", count=2),
                make_category("p1", "Real Estate", prebuilt=True, count=3),
            ],
            TEMPLATES: [
                make_template("ut1", "u1"),
                make_template("ut2", "u1"),
                make_template("ut3", "u1"),
                make_template("ut4", "u2"),
                make_template("ut5", "u2"),
                make_template("pt1", "p1", prebuilt=True),
                make_template("pt2", "p1", prebuilt=True),
                make_template("pt3", "p1", prebuilt=True),
            ],
        },
        values=current_values(),
    )


def category_pack(category_id: str = "c1", templates: list[dict[str, Any]] | None = None, **category: Any) -> dict[str, Any]:
    templates = templates if templates is not None else [make_template("t9", category_id)]
    return {
        "name": "Test Pack",
        "version": "1.0",
        "category": {"id": category_id, "name": category.get("name", "Cat One"), "description": ""},
        "templates": [
            {k: t[k] for k in ("id", "label", "category", "keywords", "body", "isPrebuilt")}
            for t in templates
        ],
        "metadata": {"exportedBy": "tests"},
    }


def ad_pack(categories: list[dict[str, Any]], **fields: Any) -> dict[str, Any]:
    return {
        "id": "pack_1",
        "name": "Starter Pack",
        "niche": "real-estate",
        "version": "1.0.0",
        "author": "tests",
        "description": "",
        "createdAt": TS,
        "categories": categories,
        **fields,
    }


def ad_category(name: str, titles: list[str], *, category_id: str = "x1") -> dict[str, Any]:
    return {
        "id": category_id,
        "name": name,
        "description": "",
        "templates": [
            {"id": f"{category_id}_{i}", "title": title, "content": f"Content for {title}", "keywords": ["a", "b", "c"]}
            for i, title in enumerate(titles, start=1)
        ],
    }
