"""Tests for schema generation detection."""

import pytest

from templatestore.services.migration import detect_generation, detect_store_generation
from templatestore.store import MemoryStore, SETTINGS_KEY, STORAGE_VERSION_KEY

from conftest import BrokenStore


class TestDetectGeneration:
    def test_marker_wins(self):
        assert detect_generation({STORAGE_VERSION_KEY: 2}) == 2
        assert detect_generation({STORAGE_VERSION_KEY: 1, SETTINGS_KEY: {"onboardingCompleted": True}}) == 1

    def test_falsy_marker_falls_through(self):
        assert detect_generation({STORAGE_VERSION_KEY: 0, SETTINGS_KEY: {"aiProvider": "gemini"}}) == 2

    def test_no_settings_is_fresh(self):
        assert detect_generation({}) == 0
        assert detect_generation({SETTINGS_KEY: None}) == 0

    @pytest.mark.parametrize("field", ["onboardingCompleted", "businessDescription", "aiProvider"])
    def test_generation_two_fields(self, field):
        assert detect_generation({SETTINGS_KEY: {"ui": {}, field: False}}) == 2

    def test_settings_without_new_fields_is_legacy(self):
        assert detect_generation({SETTINGS_KEY: {"ui": {"theme": "dark"}}}) == 1
        assert detect_generation({SETTINGS_KEY: {}}) == 1


class TestDetectStoreGeneration:
    @pytest.mark.asyncio
    async def test_reads_store(self):
        store = MemoryStore(values={SETTINGS_KEY: {"templates": {"maxSuggestions": 3}}})
        assert await detect_store_generation(store) == 1

    @pytest.mark.asyncio
    async def test_read_error_counts_as_fresh(self):
        assert await detect_store_generation(BrokenStore()) == 0

    @pytest.mark.asyncio
    async def test_garbage_marker_counts_as_fresh(self):
        store = MemoryStore(values={STORAGE_VERSION_KEY: "two", SETTINGS_KEY: {}})
        assert await detect_store_generation(store) == 0
