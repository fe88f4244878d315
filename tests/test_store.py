from datetime import UTC, datetime, timedelta

import pytest

from conftest import NOW
from reminder_bot.errors import DuplicateId, NotFound
from reminder_bot.models import Reminder
from reminder_bot.store import SQLiteStore


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(tmp_path / "reminders.db")
    s.bootstrap()
    yield s
    s.close()


def _reminder(reminder_id: str, due: datetime, text: str = "water plants") -> Reminder:
    return Reminder(id=reminder_id, due=due, destination="@alice:example.org", text=text)


def test_bootstrap_is_idempotent(tmp_path):
    db_path = tmp_path / "reminders.db"
    store = SQLiteStore(db_path)
    store.bootstrap()
    store.bootstrap()
    store.add(_reminder("a" * 20, NOW))

    reopened = SQLiteStore(db_path)
    reopened.bootstrap()
    assert reopened.get("a" * 20) is not None
    reopened.close()
    store.close()


def test_add_and_get_roundtrip(store):
    store.add(_reminder("r1", NOW))

    stored = store.get("r1")
    assert stored is not None
    assert stored.due == NOW
    assert stored.due.tzinfo is not None
    assert stored.destination == "@alice:example.org"
    assert stored.text == "water plants"
    assert stored.sent is False


def test_add_ignores_incoming_sent_flag(store):
    reminder = _reminder("r1", NOW)
    reminder.sent = True
    store.add(reminder)
    assert store.get("r1").sent is False


def test_due_is_stored_at_second_precision(store):
    store.add(_reminder("r1", NOW + timedelta(microseconds=750000)))
    assert store.get("r1").due == NOW


def test_duplicate_id_rejected(store):
    store.add(_reminder("r1", NOW))
    with pytest.raises(DuplicateId):
        store.add(_reminder("r1", NOW + timedelta(hours=1), text="other"))
    assert store.get("r1").text == "water plants"


def test_due_before_filters_by_time(store):
    store.add(_reminder("past", NOW - timedelta(minutes=5)))
    store.add(_reminder("exact", NOW))
    store.add(_reminder("future", NOW + timedelta(seconds=1)))

    due = store.due_before(NOW)
    assert {r.id for r in due} == {"past", "exact"}


def test_due_before_never_returns_sent_rows(store):
    store.add(_reminder("r1", NOW - timedelta(minutes=5)))
    store.add(_reminder("r2", NOW - timedelta(minutes=1)))
    store.mark_sent("r1")

    assert [r.id for r in store.due_before(NOW)] == ["r2"]


def test_mark_sent_is_idempotent(store):
    store.add(_reminder("r1", NOW))
    store.mark_sent("r1")
    first = store.get("r1")
    store.mark_sent("r1")
    assert store.get("r1") == first
    assert first.sent is True


def test_mark_sent_unknown_id(store):
    with pytest.raises(NotFound):
        store.mark_sent("missing")


def test_rows_are_never_deleted(store):
    store.add(_reminder("r1", NOW))
    store.mark_sent("r1")
    assert store.get("r1") is not None
    assert store.pending_count() == 0


def test_pending_count_and_next_due(store):
    assert store.pending_count() == 0
    assert store.next_due() is None

    store.add(_reminder("later", NOW + timedelta(days=2)))
    store.add(_reminder("sooner", NOW + timedelta(hours=1)))

    assert store.pending_count() == 2
    assert store.next_due() == NOW + timedelta(hours=1)
    assert [r.id for r in store.list_pending()] == ["sooner", "later"]


def test_due_index_exists(store):
    conn = store._connect()
    rows = conn.execute("PRAGMA index_list('reminders')").fetchall()
    assert "reminders_ts" in {row["name"] for row in rows}


def test_due_before_accepts_any_timezone(store):
    store.add(_reminder("r1", datetime(2014, 7, 8, 9, 0, 0, tzinfo=UTC)))
    assert [r.id for r in store.due_before(NOW)] == ["r1"]
