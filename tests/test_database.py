from datetime import datetime, timezone

import pytest

from modelo.database import SERVER_TIMESTAMP, build_query
from modelo.errors import ConflictError, NotFoundError
from modelo.repositories.base import to_datetime


def test_add_and_get_by_id(gateway):
    doc_id = gateway.add("things", {"name": "lamp", "tags": ["a"]})
    doc = gateway.get_by_id("things", doc_id)
    assert doc["id"] == doc_id
    assert doc["name"] == "lamp"
    assert doc["createdAt"] == doc["updatedAt"]


def test_get_missing_returns_none(gateway):
    assert gateway.get_by_id("things", "nope") is None


def test_datetimes_round_trip_at_millisecond_precision(gateway):
    when = datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
    doc_id = gateway.add("things", {"when": when})
    stored = to_datetime(gateway.get_by_id("things", doc_id)["when"])
    assert stored == datetime(2024, 3, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)


def test_updated_at_never_goes_backwards(gateway):
    doc_id = gateway.add("things", {"n": 0})
    seen = [to_datetime(gateway.get_by_id("things", doc_id)["updatedAt"])]
    for n in range(1, 5):
        gateway.update("things", doc_id, {"n": n})
        seen.append(to_datetime(gateway.get_by_id("things", doc_id)["updatedAt"]))
    assert seen == sorted(seen)
    created = to_datetime(gateway.get_by_id("things", doc_id)["createdAt"])
    assert created <= seen[-1]


def test_server_timestamp_resolves_to_write_time(gateway):
    doc_id = gateway.add("things", {"deliveredAt": SERVER_TIMESTAMP})
    doc = gateway.get_by_id("things", doc_id)
    assert isinstance(doc["deliveredAt"], datetime)
    assert doc["deliveredAt"] == doc["createdAt"]


def test_add_with_existing_id_conflicts(gateway):
    gateway.add("things", {"n": 1}, doc_id="fixed")
    with pytest.raises(ConflictError):
        gateway.add("things", {"n": 2}, doc_id="fixed")


def test_set_keeps_created_at(gateway):
    gateway.add("things", {"n": 1}, doc_id="fixed")
    created = gateway.get_by_id("things", "fixed")["createdAt"]
    gateway.set("things", "fixed", {"n": 2})
    doc = gateway.get_by_id("things", "fixed")
    assert doc["n"] == 2
    assert doc["createdAt"] == created


def test_update_missing_document_raises(gateway):
    with pytest.raises(NotFoundError):
        gateway.update("things", "missing", {"n": 1})


def test_array_union_and_remove_are_set_like(gateway):
    doc_id = gateway.add("things", {"tags": ["a"]})
    gateway.array_union("things", doc_id, "tags", ["a", "b"])
    gateway.array_union("things", doc_id, "tags", ["b", "c"])
    assert gateway.get_by_id("things", doc_id)["tags"] == ["a", "b", "c"]
    gateway.array_remove("things", doc_id, "tags", ["a", "zzz"])
    assert gateway.get_by_id("things", doc_id)["tags"] == ["b", "c"]


def test_increment(gateway):
    doc_id = gateway.add("things", {"count": 1})
    gateway.increment("things", doc_id, "count", 2)
    assert gateway.get_by_id("things", doc_id)["count"] == 3


def test_compare_and_set_checks_current_value(gateway):
    doc_id = gateway.add("things", {"status": "pending"})
    assert gateway.compare_and_set("things", doc_id, "status", ["draft"], "active") is None
    updated = gateway.compare_and_set("things", doc_id, "status", ["pending"], "accepted", {"note": "ok"})
    assert updated["status"] == "accepted"
    assert updated["note"] == "ok"


def test_update_where_counts_modified(gateway):
    for n in range(3):
        gateway.add("things", {"group": "x", "seen": False, "n": n})
    gateway.add("things", {"group": "y", "seen": False})
    assert gateway.update_where("things", [("group", "==", "x")], {"seen": True}) == 3
    assert gateway.count("things", [("seen", "==", True)]) == 3


def test_build_query_operators():
    assert build_query(None) == {}
    assert build_query([("id", "==", "abc")]) == {"_id": "abc"}
    assert build_query([("n", ">=", 2), ("status", "in", ["a"])]) == {
        "$and": [{"n": {"$gte": 2}}, {"status": {"$in": ["a"]}}]
    }
    with pytest.raises(ValueError):
        build_query([("n", "~", 1)])


def test_text_match_over_several_fields(gateway):
    gateway.add("things", {"title": "Shooting photo", "description": "studio"})
    gateway.add("things", {"title": "Coiffure", "description": "Chignon pour shooting"})
    gateway.add("things", {"title": "Ongles", "description": "manucure"})
    found = gateway.find("things", [(("title", "description"), "matches", "SHOOTING")])
    assert len(found) == 2


class TestPagination:
    def _fill(self, gateway, n):
        return {gateway.add("things", {"n": i}) for i in range(n)}

    def test_cursor_pages_cover_everything_once(self, gateway):
        ids = self._fill(gateway, 25)
        seen, cursor, pages = [], None, 0
        while True:
            page = gateway.query("things", None, ("createdAt", "desc"), page_size=10, cursor=cursor)
            seen.extend(doc["id"] for doc in page.items)
            pages += 1
            if not page.has_more:
                break
            cursor = page.cursor
            assert pages < 10
        assert pages == 3
        assert len(seen) == len(set(seen))
        assert set(seen) == ids

    def test_page_numbers_without_cursor(self, gateway):
        ids = self._fill(gateway, 12)
        first = gateway.query("things", None, ("createdAt", "asc"), page=1, page_size=5)
        third = gateway.query("things", None, ("createdAt", "asc"), page=3, page_size=5)
        assert first.has_more
        assert len(third.items) == 2
        assert not third.has_more
        assert {d["id"] for d in first.items} <= ids

    def test_empty_collection(self, gateway):
        page = gateway.query("things")
        assert page.items == []
        assert page.has_more is False
        assert page.cursor is None


class TestSubscriptions:
    def test_query_listener_receives_initial_and_updates(self, gateway):
        received = []
        sub = gateway.subscribe_query("things", received.append, [("group", "==", "x")])
        assert received == [[]]
        gateway.add("things", {"group": "x"})
        assert len(received) == 2
        assert len(received[-1]) == 1
        sub.unsubscribe()
        gateway.add("things", {"group": "x"})
        assert len(received) == 2

    def test_unchanged_snapshot_is_not_redelivered(self, gateway):
        received = []
        gateway.subscribe_query("things", received.append, [("group", "==", "x")])
        gateway.add("things", {"group": "y"})
        assert len(received) == 1

    def test_document_listener(self, gateway):
        doc_id = gateway.add("things", {"n": 1})
        received = []
        with gateway.subscribe_document("things", doc_id, received.append):
            gateway.update("things", doc_id, {"n": 2})
            gateway.delete("things", doc_id)
        assert [d["n"] if d else None for d in received] == [1, 2, None]

    def test_live_listener_counter_tracks_unsubscribe(self, gateway):
        hub = gateway.hub
        assert hub.active_subscriptions == 0
        subs = [gateway.subscribe_query("things", lambda docs: None) for _ in range(3)]
        assert hub.active_subscriptions == 3
        for sub in subs:
            sub.unsubscribe()
            sub.unsubscribe()
        assert hub.active_subscriptions == 0

    def test_failing_listener_does_not_break_writes(self, gateway):
        def boom(docs):
            if docs:
                raise RuntimeError("listener failure")

        gateway.subscribe_query("things", boom)
        doc_id = gateway.add("things", {"n": 1})
        assert gateway.get_by_id("things", doc_id) is not None
