"""
Unit tests for the in-memory Storage backend.

Covers:
    - Slug uniqueness per domain scope (NULL scope vs concrete domain)
    - Verified-domain lookup
    - Atomic click increments under concurrency
    - Cursor writes, cascading delete
    - Grouped reads used by the aggregator
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from linkhop.errors import InvalidColumnError
from linkhop.models import AnalyticEvent, Link, new_id
from tests.conftest import make_domain, make_link

T0 = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _event(link_id, ts=T0, **kwargs):
    return AnalyticEvent(id=new_id(), link_id=link_id, timestamp=ts, **kwargs)


def test_slug_unique_within_scope(storage):
    domain = make_domain(storage)
    make_link(storage, "promo")
    make_link(storage, "promo", domain_id=domain.id)  # distinct scope

    assert not storage.save_link(Link(id=new_id(), slug="promo", original_url="https://x", owner_id="bob"))
    assert not storage.save_link(
        Link(id=new_id(), slug="promo", original_url="https://x", owner_id="bob", domain_id=domain.id)
    )


def test_get_link_by_slug_respects_scope(storage):
    domain = make_domain(storage)
    shared = make_link(storage, "promo")
    scoped = make_link(storage, "promo", domain_id=domain.id, original_url="https://brand.example")

    assert storage.get_link_by_slug("promo", None).id == shared.id
    assert storage.get_link_by_slug("promo", domain.id).id == scoped.id
    assert storage.get_link_by_slug("missing", None) is None
    assert storage.get_link_by_slug("promo", "other-domain") is None


def test_find_verified_domain(storage):
    make_domain(storage, "Go.Brand.Test")
    make_domain(storage, "pending.brand.test", verified=False)
    assert storage.find_verified_domain("go.brand.test").host == "go.brand.test"
    assert storage.find_verified_domain("pending.brand.test") is None
    assert storage.find_verified_domain("unknown.test") is None


def test_reads_return_copies(storage):
    link = make_link(storage)
    fetched = storage.get_link(link.id)
    fetched.click_count = 999
    assert storage.get_link(link.id).click_count == 0


def test_increment_click_is_atomic_under_threads(storage):
    link = make_link(storage)
    threads_n, per_thread = 16, 250
    barrier = threading.Barrier(threads_n)

    def hammer():
        barrier.wait()
        for _ in range(per_thread):
            storage.increment_click(link.id)

    threads = [threading.Thread(target=hammer) for _ in range(threads_n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert storage.get_link(link.id).click_count == threads_n * per_thread


def test_increment_unknown_link(storage):
    assert storage.increment_click("nope") is False


def test_cursor_last_write_wins(storage):
    link = make_link(storage)
    assert storage.set_last_used_target_index(link.id, 0)
    assert storage.set_last_used_target_index(link.id, 2)
    assert storage.get_link(link.id).last_used_target_index == 2
    assert storage.set_last_used_target_index("nope", 1) is False


def test_delete_cascades_events(storage):
    link = make_link(storage)
    storage.add_event(_event(link.id))
    assert storage.delete_link(link.id)
    assert storage.get_link(link.id) is None
    assert storage.recent_events(link.id, 10, None) == []
    assert storage.get_link_by_slug("promo", None) is None
    assert storage.delete_link(link.id) is False


def test_add_event_requires_link(storage):
    with pytest.raises(KeyError):
        storage.add_event(_event("ghost"))


def test_clicks_by_day_ascending_with_window(storage):
    link = make_link(storage)
    for days_ago in (0, 0, 1, 9):
        storage.add_event(_event(link.id, ts=T0 - timedelta(days=days_ago)))

    assert storage.clicks_by_day(link.id, None) == [
        ((T0 - timedelta(days=9)).date(), 1),
        ((T0 - timedelta(days=1)).date(), 1),
        (T0.date(), 2),
    ]
    assert storage.clicks_by_day(link.id, T0 - timedelta(days=7)) == [
        ((T0 - timedelta(days=1)).date(), 1),
        (T0.date(), 2),
    ]


def test_recent_events_newest_first(storage):
    link = make_link(storage)
    for minutes in (5, 1, 3):
        storage.add_event(_event(link.id, ts=T0 + timedelta(minutes=minutes), browser=f"b{minutes}"))
    assert [e.browser for e in storage.recent_events(link.id, 2, None)] == ["b5", "b3"]


def test_top_values_excludes_empty_and_ranks(storage):
    link = make_link(storage)
    for browser in ("Chrome", "Chrome", "Firefox", "Safari", "Safari", "Chrome", None, ""):
        storage.add_event(_event(link.id, browser=browser, device_type="mobile"))

    assert storage.top_values(link.id, "browser", 2, None) == [("Chrome", 3), ("Safari", 2)]
    assert storage.top_values(link.id, "deviceType", 5, None) == [("mobile", 8)]


@pytest.mark.parametrize("column", ["ip_address", "user_agent", "browser; DROP TABLE links", "", None])
def test_top_values_rejects_unlisted_columns(storage, column):
    link = make_link(storage)
    with pytest.raises(InvalidColumnError):
        storage.top_values(link.id, column, 5, None)


def test_owner_counts(storage):
    a = make_link(storage, "a")
    make_link(storage, "b")
    make_link(storage, "c", owner_id="bob")
    storage.add_event(_event(a.id, ts=T0))
    storage.add_event(_event(a.id, ts=T0 - timedelta(days=30)))

    assert storage.count_owner_links("alice") == 2
    assert storage.count_owner_events("alice", None) == 2
    assert storage.count_owner_events("alice", T0 - timedelta(days=7)) == 1
    assert storage.count_owner_events("bob", None) == 0
