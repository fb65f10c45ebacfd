"""
Settings store tests

The same behavior is checked against the in-memory and SQL backends.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from formbridge.db.session import init_models
from formbridge.services.settings_store import (
    InMemorySettingsStore,
    SqlSettingsStore,
    WriteStatus,
    is_blank,
    is_enabled_flag,
    sanitize_settings,
    sanitize_text,
)


class TestSanitization:
    def test_booleans_pass_through(self):
        assert sanitize_settings({"a": True, "b": False}) == {"a": True, "b": False}

    def test_numeric_strings_are_coerced(self):
        assert sanitize_settings({"count": "42", "ratio": "0.5", "neg": "-3"}) == {"count": 42, "ratio": 0.5, "neg": -3}

    def test_text_is_stripped_of_markup(self):
        cleaned = sanitize_settings({"name": "<b>Hello</b> <script>alert(1)</script>world"})
        assert cleaned == {"name": "Hello world"}

    def test_recurses_into_nested_structures(self):
        raw = {"field_mapping": {"email": "<i>email</i>"}, "tags": ["a", "<p>b</p>", "3"]}
        assert sanitize_settings(raw) == {"field_mapping": {"email": "email"}, "tags": ["a", "b", 3]}

    def test_lone_angle_brackets_are_escaped(self):
        assert sanitize_text("a < b") == "a &lt; b"

    def test_sanitizing_twice_is_stable(self):
        once = sanitize_settings({"x": "<em>5</em>", "y": "  spaced   out "})
        assert sanitize_settings(once) == once

    @pytest.mark.parametrize("value", ["", "0", 0, None, False, [], {}, "   "])
    def test_blank_values(self, value):
        assert is_blank(value) is True

    @pytest.mark.parametrize("value", ["k1", 1, True, ["x"], 0.5])
    def test_non_blank_values(self, value):
        assert is_blank(value) is False


class TestEnabledFlag:
    @pytest.mark.parametrize("value", [True, 1, 2.0, "1", "true", "TRUE", " yes ", "on"])
    def test_enabled_values(self, value):
        assert is_enabled_flag(value) is True

    @pytest.mark.parametrize("value", [False, 0, 0.0, "0", "false", "False", "no", "off", "", None, [], {"a": 1}])
    def test_disabled_values(self, value):
        assert is_enabled_flag(value) is False


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, session_factory):
    if request.param == "memory":
        return InMemorySettingsStore()
    return SqlSettingsStore(session_factory)


class TestSettingsStore:
    @pytest.mark.asyncio
    async def test_missing_records_read_as_empty(self, store):
        assert await store.get_global("nope") == {}
        assert await store.get_for_entity(1, "nope") == {}

    @pytest.mark.asyncio
    async def test_global_round_trip_is_sanitized(self, store):
        status = await store.set_global("crm", {"api_key": "<b>k1</b>", "limit": "10", "active": True})

        assert status is WriteStatus.CREATED
        assert await store.get_global("crm") == {"api_key": "k1", "limit": 10, "active": True}

    @pytest.mark.asyncio
    async def test_write_status_distinguishes_no_change(self, store):
        await store.set_global("crm", {"api_key": "k1"})

        assert await store.set_global("crm", {"api_key": "k1"}) is WriteStatus.UNCHANGED
        assert await store.set_global("crm", {"api_key": "k2"}) is WriteStatus.UPDATED

    @pytest.mark.asyncio
    async def test_entity_scope_is_isolated(self, store):
        await store.set_for_entity(1, "crm", {"enabled": True, "action": "subscribe"})
        await store.set_for_entity(2, "crm", {"enabled": False})

        assert await store.get_for_entity(1, "crm") == {"enabled": True, "action": "subscribe"}
        assert await store.get_for_entity(2, "crm") == {"enabled": False}
        assert await store.get_global("crm") == {}

    @pytest.mark.asyncio
    async def test_get_all_for_entity(self, store):
        await store.set_for_entity(5, "crm", {"enabled": True})
        await store.set_for_entity(5, "mailchimp", {"enabled": False})
        await store.set_for_entity(6, "crm", {"enabled": True})

        assert await store.get_all_for_entity(5) == {"crm": {"enabled": True}, "mailchimp": {"enabled": False}}

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store):
        await store.set_global("crm", {"nested": {"a": "1"}})

        first = await store.get_global("crm")
        first["nested"]["a"] = "changed"

        assert await store.get_global("crm") == {"nested": {"a": 1}}

    @pytest.mark.asyncio
    async def test_delete_operations(self, store):
        await store.set_global("crm", {"api_key": "k1"})
        await store.set_for_entity(9, "crm", {"enabled": True})
        await store.set_for_entity(9, "mailchimp", {"enabled": True})

        assert await store.delete_global("crm") is True
        assert await store.delete_global("crm") is False
        assert await store.delete_for_entity(9, "crm") == 1
        assert await store.delete_for_entity(9) == 1
        assert await store.get_all_for_entity(9) == {}


@pytest_asyncio.fixture
async def file_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settings.db'}", connect_args={"timeout": 30})
    await init_models(engine)
    yield SqlSettingsStore(async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession))
    await engine.dispose()


class TestConcurrentWrites:
    @pytest.mark.asyncio
    async def test_concurrent_first_form_writes(self, file_store):
        values = [{"v": i} for i in range(5)]

        statuses = await asyncio.gather(*(file_store.set_for_entity(7, "crm", value) for value in values))

        assert all(isinstance(status, WriteStatus) for status in statuses)
        assert WriteStatus.CREATED in statuses
        assert await file_store.get_for_entity(7, "crm") in values
        assert list(await file_store.get_all_for_entity(7)) == ["crm"]

    @pytest.mark.asyncio
    async def test_concurrent_first_global_writes(self, file_store):
        values = [{"api_key": f"k{i}"} for i in range(5)]

        statuses = await asyncio.gather(*(file_store.set_global("crm", value) for value in values))

        assert all(isinstance(status, WriteStatus) for status in statuses)
        assert await file_store.get_global("crm") in values
