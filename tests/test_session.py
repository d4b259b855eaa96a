"""
Tests for editing/session.py — whole-turn behaviour of an EditingSession
and the SessionRegistry that holds one per browser.

The first four classes walk through complete click-to-close flows.
"""
import asyncio
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import FakePersistence, RecordingChannel
from editing.effects import HIDE_FORM, SHOW_FORM
from editing.errors import FORM_ERROR_KEY
from editing.items import CREATE_FORM
from editing.session import EditingSession, SessionRegistry


def flush(session):
    channel = RecordingChannel()
    session.flush_effects(channel)
    return channel.sent


def visible_forms(session):
    return [k for k, c in session.components.items() if c.state.visible]


class TestStart:
    def test_mounts_create_form_and_one_per_item(self, session):
        assert set(session.components) == {CREATE_FORM, 1, 2}
        assert visible_forms(session) == []
        assert session.coordinator.token is None

    def test_start_is_idempotent(self, session, store):
        calls = len(store.calls)
        session.start()
        assert len(store.calls) == calls

    def test_unknown_form_raises_key_error(self, session):
        with pytest.raises(KeyError):
            session.show_update_form(99)
        with pytest.raises(KeyError):
            session.cancel(99)


class TestUpdateFromRowClick:
    """Click row 1, submit a new description, form closes with the row updated."""

    def test_open_then_update(self, session, store):
        session.show_update_form(1)
        assert visible_forms(session) == [1]
        assert session.coordinator.token == 1
        assert flush(session) == [("#row-1", SHOW_FORM)]

        result = session.submit(1, {"description": "Coffee shop"})

        assert result.ok
        assert store.calls[-1] == ("update", 1, {"description": "Coffee shop", "amount": 300})
        assert session.items[0].id == 1
        assert session.items[0]["description"] == "Coffee shop"
        assert [i.id for i in session.items] == [1, 2]
        assert flush(session) == [("#row-1", HIDE_FORM)]
        assert visible_forms(session) == []
        assert session.coordinator.token is None
        assert result.changes.rows == [1]
        assert 1 in result.stale_forms


class TestRowClickWhileCreating:
    """Create form open; clicking row 2 closes it and opens form 2."""

    def test_row_click_replaces_create_form(self, session):
        session.show_create_form()
        flush(session)

        session.show_update_form(2)

        assert session.coordinator.token == 2
        assert visible_forms(session) == [2]
        assert flush(session) == [("#form-new", HIDE_FORM), ("#row-2", SHOW_FORM)]

    def test_cancel_goes_back_to_create_form(self, session):
        session.show_create_form()
        session.show_update_form(2)
        flush(session)

        session.cancel(2)

        assert session.coordinator.token == CREATE_FORM
        assert flush(session) == [("#row-2", HIDE_FORM), ("#form-new", SHOW_FORM)]


class TestRejectedSubmit:
    """Submit rejected: form stays open, errors shown, nothing sent."""

    def test_validation_failure(self, session):
        session.show_update_form(1)
        flush(session)

        result = session.submit(1, {"description": "x" * 40})

        assert result.ok is False
        assert session.component(1).state.errors == {"description": "too long"}
        assert session.coordinator.token == 1
        assert len(session.notifications) == 0
        assert flush(session) == []
        assert session.items[0]["description"] == "Coffee"

    def test_submit_on_closed_row_writes_nothing(self, session, store):
        session.show_update_form(2)
        flush(session)
        calls = len(store.calls)

        result = session.submit(1, {"description": "Elsewhere"})

        assert result.ok is False
        assert store.calls[calls:] == []
        assert store.rows[1]["description"] == "Coffee"
        assert session.coordinator.token == 2
        assert visible_forms(session) == [2]
        assert flush(session) == []


class TestDeletedElsewhere:
    """The bound record is deleted elsewhere before submit."""

    @pytest.fixture()
    def session5(self):
        store = FakePersistence([{"description": f"Item {i}", "amount": i} for i in range(1, 6)])
        s = EditingSession(store)
        s.start()
        return s, store

    def test_not_found_is_form_level_error(self, session5):
        session, store = session5
        session.show_update_form(5)
        store.delete_externally(5)
        flush(session)

        result = session.submit(5, {"description": "Renamed"})

        assert result.ok is False
        assert FORM_ERROR_KEY in session.component(5).state.errors
        assert session.coordinator.token == 5
        assert [i.id for i in session.items] == [1, 2, 3, 4, 5]
        assert flush(session) == []

    def test_refresh_reconciles_vanished_item(self, session5):
        session, store = session5
        session.show_update_form(5)
        store.delete_externally(5)

        result = session.refresh()

        assert result.changes.relisted
        assert 5 not in session.components
        assert session.coordinator.token is None
        assert session.coordinator.check_invariant()


class TestCreate:
    def test_create_adds_row_and_closes_create_form(self, session):
        session.show_create_form()
        flush(session)

        result = session.submit(CREATE_FORM, {"description": "Bagel", "amount": "450"})

        assert result.ok
        assert result.changes.relisted
        assert [i.id for i in session.items] == [1, 2, 3]
        assert 3 in session.components
        assert session.components[CREATE_FORM].state.draft == {}
        assert session.coordinator.token is None
        assert flush(session) == [("#form-new", HIDE_FORM)]

    def test_new_row_form_can_be_opened(self, session):
        session.show_create_form()
        session.submit(CREATE_FORM, {"description": "Bagel", "amount": 450})
        session.show_update_form(3)
        assert visible_forms(session) == [3]


class TestFieldChange:
    def test_change_reports_errors(self, store):
        def required(draft):
            return {} if draft.get("description") else {"description": "can't be blank"}

        session = EditingSession(store, validator=required)
        session.start()
        session.show_update_form(1)
        result = session.change_field(1, "description", "")
        assert result.ok is False
        assert session.component(1).state.errors == {"description": "can't be blank"}

    def test_change_ok(self, session):
        session.show_update_form(1)
        assert session.change_field(1, "description", "Tea").ok


class TestIdempotence:
    def test_show_update_form_twice(self, session):
        session.show_update_form(1)
        first = (session.coordinator.token, visible_forms(session), flush(session))
        session.show_update_form(1)
        second = (session.coordinator.token, visible_forms(session), flush(session))
        assert first[:2] == second[:2]
        assert second[2] == []


class TestSessionRegistry:
    @pytest.fixture()
    def registry(self, store):
        return SessionRegistry(lambda sid: EditingSession(store, session_id=sid), maxsize=2)

    def test_get_or_create_starts_session(self, registry):
        s = registry.get_or_create("abc")
        assert s.session_id == "abc"
        assert CREATE_FORM in s.components
        assert len(registry) == 1

    def test_same_id_same_session(self, registry):
        assert registry.get_or_create("abc") is registry.get_or_create("abc")

    def test_missing_id_gets_fresh_id(self, registry):
        s = registry.get_or_create(None)
        assert s.session_id
        assert registry.get(s.session_id) is s

    def test_sessions_are_independent(self, registry):
        a = registry.get_or_create("a")
        b = registry.get_or_create("b")
        a.show_update_form(1)
        assert b.coordinator.token is None
        assert b.dispatcher.pending() == ()

    def test_lru_eviction_closes_session(self, registry):
        a = registry.get_or_create("a")
        registry.get_or_create("b")
        registry.get_or_create("c")
        assert registry.get("a") is None
        assert a.components == {}

    def test_eviction_waits_for_request_holding_session(self, registry):
        a = registry.get_or_create("a")

        async def evict_while_held():
            async with a.lock:
                registry.get_or_create("b")
                registry.get_or_create("c")
                return set(a.components)

        mounted = asyncio.run(evict_while_held())

        assert mounted == {CREATE_FORM, 1, 2}
        assert registry.get("a") is None
        assert a.retired
        a.close_if_retired()
        assert a.components == {}

    def test_idle_session_expires(self, store):
        registry = SessionRegistry(lambda sid: EditingSession(store, session_id=sid),
                                   ttl_seconds=0.05)
        s = registry.get_or_create("idle")
        time.sleep(0.1)
        assert registry.get("idle") is None
        assert s.components == {}

    def test_drop_and_clear(self, registry):
        registry.get_or_create("a")
        registry.get_or_create("b")
        registry.drop("a")
        assert registry.get("a") is None
        registry.clear()
        assert len(registry) == 0
