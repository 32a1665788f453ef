"""
Tests: waitlist state machine (join, promote, confirm, expire).
"""

import threading
from datetime import date, timedelta

import pytest

from backend.app.services.errors import (
    DuplicateEntry,
    EntryNotFound,
    InvalidTransition,
    StoreUnavailable,
)
from backend.app.services.waitlist import ScopeLocks, WaitlistService, WaitlistStatus
from backend.app.services.waitlist.models import (
    WaitlistEntry,
    entry_sort_key,
    marker_sort_key,
    scope_date,
)

from .conftest import T0, FakeNotifier

TENANT = "t1"
SCOPE = "2024-01-20"
WINDOW = timedelta(minutes=10)


def statuses(waitlist, scope=SCOPE, tenant=TENANT):
    return [(e.visitor_email, e.status.value) for e in waitlist.list_entries(tenant, scope)]


def notified_count(waitlist, scope=SCOPE):
    return sum(1 for e in waitlist.list_entries(TENANT, scope) if e.status == WaitlistStatus.NOTIFIED)


class TestJoin:
    def test_fifo_positions(self, waitlist):
        for email in ("a@x.io", "b@x.io", "c@x.io"):
            waitlist.join(TENANT, SCOPE, email)
        entries = waitlist.list_entries(TENANT, SCOPE)
        assert [(e.visitor_email, e.position) for e in entries] == [
            ("a@x.io", 1), ("b@x.io", 2), ("c@x.io", 3),
        ]
        assert all(e.status == WaitlistStatus.WAITING for e in entries)
        assert entries[0].created_at == T0

    def test_email_is_normalized(self, waitlist):
        entry = waitlist.join(TENANT, SCOPE, "  Ann@Example.COM ", " Ann ")
        assert entry.visitor_email == "ann@example.com"
        assert entry.visitor_name == "Ann"

    def test_duplicate_active_entry(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        with pytest.raises(DuplicateEntry):
            waitlist.join(TENANT, SCOPE, "A@X.io")

    def test_same_email_other_scope_allowed(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, "2024-01-21", "a@x.io")
        waitlist.join("t2", SCOPE, "a@x.io")

    def test_rejoin_after_expiry_goes_to_the_back(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")
        waitlist.promote_next(TENANT, SCOPE)
        waitlist.expire_stale(TENANT, SCOPE, clock.advance(minutes=11))
        entry = waitlist.join(TENANT, SCOPE, "a@x.io")
        assert entry.position == 3

    def test_empty_email_rejected(self, waitlist):
        with pytest.raises(ValueError):
            waitlist.join(TENANT, SCOPE, "   ")

    def test_join_confirmation_sent(self, waitlist, notifier):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        assert notifier.joins == [(TENANT, SCOPE, "a@x.io", 1)]

    def test_concurrent_joins_get_unique_positions(self, waitlist):
        barrier = threading.Barrier(10)

        def join(i):
            barrier.wait()
            waitlist.join(TENANT, SCOPE, f"v{i}@x.io")

        threads = [threading.Thread(target=join, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        positions = [e.position for e in waitlist.list_entries(TENANT, SCOPE)]
        assert positions == list(range(1, 11))


class TestPromote:
    def test_promotes_lowest_position(self, waitlist, notifier):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")

        promoted = waitlist.promote_next(TENANT, SCOPE)

        assert promoted.visitor_email == "a@x.io"
        assert promoted.status == WaitlistStatus.NOTIFIED
        assert promoted.notified_at == T0
        assert promoted.expires_at == T0 + WINDOW
        assert notifier.notified == [(TENANT, SCOPE, "a@x.io", T0 + WINDOW)]

    def test_empty_scope_is_noop(self, waitlist, notifier):
        assert waitlist.promote_next(TENANT, SCOPE) is None
        assert notifier.notified == []

    def test_single_offer_at_a_time(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")
        waitlist.promote_next(TENANT, SCOPE)
        assert waitlist.promote_next(TENANT, SCOPE) is None
        assert statuses(waitlist) == [("a@x.io", "notified"), ("b@x.io", "waiting")]

    def test_capacity_check_gates_promotion(self, store, notifier, clock):
        waitlist = WaitlistService(store, notifier, clock=clock, capacity_check=lambda t, s: False)
        waitlist.join(TENANT, SCOPE, "a@x.io")
        assert waitlist.promote_next(TENANT, SCOPE) is None
        assert statuses(waitlist) == [("a@x.io", "waiting")]

    def test_notifier_failure_keeps_state(self, store, clock):
        waitlist = WaitlistService(store, FakeNotifier(ok=False), clock=clock)
        waitlist.join(TENANT, SCOPE, "a@x.io")
        promoted = waitlist.promote_next(TENANT, SCOPE)
        assert promoted is not None
        assert waitlist.notified_entry(TENANT, SCOPE).id == promoted.id

    def test_custom_notification_window(self, store, notifier, clock):
        waitlist = WaitlistService(store, notifier, clock=clock, notification_window=timedelta(minutes=30))
        waitlist.join(TENANT, SCOPE, "a@x.io")
        assert waitlist.promote_next(TENANT, SCOPE).expires_at == T0 + timedelta(minutes=30)

    def test_window_must_be_positive(self, store, notifier):
        with pytest.raises(ValueError):
            WaitlistService(store, notifier, notification_window=timedelta(0))

    def test_concurrent_promotions_notify_once(self, waitlist, notifier):
        for email in ("a@x.io", "b@x.io", "c@x.io"):
            waitlist.join(TENANT, SCOPE, email)
        barrier = threading.Barrier(8)
        results = []

        def promote():
            barrier.wait()
            results.append(waitlist.promote_next(TENANT, SCOPE))

        threads = [threading.Thread(target=promote) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len([r for r in results if r is not None]) == 1
        assert notified_count(waitlist) == 1
        assert len(notifier.notified) == 1

    def test_separate_services_share_store_safely(self, store, clock):
        # Two workers with their own in-process locks: conditional writes decide
        first = WaitlistService(store, FakeNotifier(), clock=clock)
        second = WaitlistService(store, FakeNotifier(), clock=clock)
        first.join(TENANT, SCOPE, "a@x.io")
        first.join(TENANT, SCOPE, "b@x.io")

        assert first.promote_next(TENANT, SCOPE) is not None
        assert second.promote_next(TENANT, SCOPE) is None
        assert notified_count(first) == 1


class TestConfirm:
    def test_confirm_notified_entry(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        clock.advance(minutes=5)

        booked = waitlist.confirm_booking(TENANT, SCOPE, entry.id)

        assert booked.status == WaitlistStatus.BOOKED
        assert booked.booked_at == T0 + timedelta(minutes=5)
        assert booked.expires_at is None
        assert waitlist.notified_entry(TENANT, SCOPE) is None

    def test_confirm_frees_offer_for_next(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        waitlist.confirm_booking(TENANT, SCOPE, entry.id)
        assert waitlist.promote_next(TENANT, SCOPE).visitor_email == "b@x.io"

    def test_confirm_waiting_entry_rejected(self, waitlist):
        entry = waitlist.join(TENANT, SCOPE, "a@x.io")
        with pytest.raises(InvalidTransition):
            waitlist.confirm_booking(TENANT, SCOPE, entry.id)
        assert statuses(waitlist) == [("a@x.io", "waiting")]

    def test_confirm_twice_rejected(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        waitlist.confirm_booking(TENANT, SCOPE, entry.id)
        with pytest.raises(InvalidTransition):
            waitlist.confirm_booking(TENANT, SCOPE, entry.id)

    def test_confirm_after_window_rejected(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        clock.advance(minutes=10)
        with pytest.raises(InvalidTransition):
            waitlist.confirm_booking(TENANT, SCOPE, entry.id)

    def test_unknown_entry(self, waitlist):
        with pytest.raises(EntryNotFound):
            waitlist.confirm_booking(TENANT, SCOPE, "missing")


class TestExpireStale:
    def test_before_window_nothing_happens(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.promote_next(TENANT, SCOPE)
        result = waitlist.expire_stale(TENANT, SCOPE, clock.advance(minutes=9))
        assert result.expired is None
        assert result.promoted is None
        assert statuses(waitlist) == [("a@x.io", "notified")]

    def test_expiry_cascades_to_next(self, waitlist, notifier, clock):
        for email in ("a@x.io", "b@x.io", "c@x.io"):
            waitlist.join(TENANT, SCOPE, email)
        waitlist.promote_next(TENANT, SCOPE)

        now = clock.advance(minutes=10)
        result = waitlist.expire_stale(TENANT, SCOPE, now)

        assert result.expired.visitor_email == "a@x.io"
        assert result.expired.expires_at is None
        assert result.promoted.visitor_email == "b@x.io"
        assert result.promoted.expires_at == now + WINDOW
        assert statuses(waitlist) == [
            ("a@x.io", "expired"), ("b@x.io", "notified"), ("c@x.io", "waiting"),
        ]
        assert [n[2] for n in notifier.notified] == ["a@x.io", "b@x.io"]

    def test_last_entry_expires_without_promotion(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.promote_next(TENANT, SCOPE)
        result = waitlist.expire_stale(TENANT, SCOPE, clock.advance(hours=1))
        assert result.expired is not None
        assert result.promoted is None
        assert waitlist.active_scopes() == []

    def test_no_offer_outstanding(self, waitlist, clock):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        result = waitlist.expire_stale(TENANT, SCOPE, clock.advance(hours=1))
        assert result.expired is None
        assert statuses(waitlist) == [("a@x.io", "waiting")]

    def test_dangling_marker_is_released(self, waitlist, store):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        store.put(
            "TENANT#t1", marker_sort_key(SCOPE),
            {"entity_type": "waitlist_marker", "scope_key": SCOPE, "entry_id": "gone"},
        )
        assert waitlist.expire_stale(TENANT, SCOPE).expired is None
        assert waitlist.promote_next(TENANT, SCOPE).visitor_email == "a@x.io"


class TestExpirePast:
    def test_past_date_scope_is_cleared(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")
        waitlist.promote_next(TENANT, SCOPE)

        expired = waitlist.expire_past(TENANT, SCOPE, date(2024, 1, 21))

        assert len(expired) == 2
        assert statuses(waitlist) == [("a@x.io", "expired"), ("b@x.io", "expired")]
        assert waitlist.notified_entry(TENANT, SCOPE) is None

    def test_booked_entries_untouched(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        waitlist.confirm_booking(TENANT, SCOPE, entry.id)
        waitlist.join(TENANT, SCOPE, "b@x.io")

        waitlist.expire_past(TENANT, SCOPE, date(2024, 1, 21))

        assert statuses(waitlist) == [("a@x.io", "booked"), ("b@x.io", "expired")]

    def test_today_and_future_untouched(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        assert waitlist.expire_past(TENANT, SCOPE, date(2024, 1, 20)) == []
        assert statuses(waitlist) == [("a@x.io", "waiting")]

    def test_product_scope_never_past(self, waitlist):
        waitlist.join(TENANT, "yoga-class", "a@x.io")
        assert waitlist.expire_past(TENANT, "yoga-class", date(2099, 1, 1)) == []

    def test_expire_all_closes_product_scope(self, waitlist):
        waitlist.join(TENANT, "yoga-class", "a@x.io")
        entry = waitlist.promote_next(TENANT, "yoga-class")
        waitlist.confirm_booking(TENANT, "yoga-class", entry.id)
        waitlist.join(TENANT, "yoga-class", "b@x.io")
        waitlist.join(TENANT, "yoga-class", "c@x.io")
        waitlist.promote_next(TENANT, "yoga-class")

        expired = waitlist.expire_all(TENANT, "yoga-class")

        assert [e.visitor_email for e in expired] == ["b@x.io", "c@x.io"]
        assert statuses(waitlist, "yoga-class") == [
            ("a@x.io", "booked"), ("b@x.io", "expired"), ("c@x.io", "expired"),
        ]
        assert waitlist.notified_entry(TENANT, "yoga-class") is None
        assert waitlist.expire_all(TENANT, "yoga-class") == []


class TestQueries:
    def test_active_scopes(self, waitlist):
        waitlist.join("t2", "yoga", "a@x.io")
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, SCOPE, "b@x.io")
        assert waitlist.active_scopes() == [("t1", SCOPE), ("t2", "yoga")]

    def test_list_entries_scoped(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        waitlist.join(TENANT, "2024-01-2", "b@x.io")
        assert [e.visitor_email for e in waitlist.list_entries(TENANT, SCOPE)] == ["a@x.io"]

    def test_get_entry(self, waitlist):
        entry = waitlist.join(TENANT, SCOPE, "a@x.io")
        assert waitlist.get_entry(TENANT, SCOPE, entry.id) == entry


class TestModels:
    def test_item_round_trip(self, waitlist):
        waitlist.join(TENANT, SCOPE, "a@x.io")
        entry = waitlist.promote_next(TENANT, SCOPE)
        item = entry.to_item()
        assert item["status"] == "notified"
        assert item["expires_at"] == (T0 + WINDOW).isoformat()
        assert WaitlistEntry.from_item(item) == entry

    def test_sort_keys_order_numerically(self):
        assert entry_sort_key("d", 9) < entry_sort_key("d", 10)

    def test_scope_date(self):
        assert scope_date("2024-01-20") == date(2024, 1, 20)
        assert scope_date("2024-02-30") is None
        assert scope_date("yoga-class") is None


class TestScopeLocks:
    def test_timeout_is_transient(self):
        locks = ScopeLocks()
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(TENANT, SCOPE):
                acquired.set()
                release.wait()

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait()
        try:
            with pytest.raises(StoreUnavailable):
                with locks.hold(TENANT, SCOPE, timeout=0.05):
                    pass
            with locks.hold(TENANT, "other-scope", timeout=0.05):
                pass
        finally:
            release.set()
            thread.join()

    def test_reentrant(self):
        locks = ScopeLocks()
        with locks.hold(TENANT, SCOPE):
            with locks.hold(TENANT, SCOPE, timeout=0.05):
                pass

    def test_released_scopes_are_dropped(self):
        locks = ScopeLocks()
        with locks.hold(TENANT, SCOPE):
            with locks.hold(TENANT, SCOPE):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_dropped_after_error_and_timeout(self):
        locks = ScopeLocks()
        with pytest.raises(ValueError):
            with locks.hold(TENANT, SCOPE):
                raise ValueError("boom")
        assert len(locks) == 0

        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(TENANT, SCOPE):
                acquired.set()
                release.wait()

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait()
        try:
            with pytest.raises(StoreUnavailable):
                with locks.hold(TENANT, SCOPE, timeout=0.05):
                    pass
            assert len(locks) == 1
        finally:
            release.set()
            thread.join()
        assert len(locks) == 0

    def test_many_scopes_do_not_accumulate(self, waitlist):
        for day in range(1, 29):
            scope = f"2024-02-{day:02d}"
            waitlist.join(TENANT, scope, "a@x.io")
            waitlist.promote_next(TENANT, scope)
        assert len(waitlist.locks) == 0

    def test_shared_locks_kept(self, store):
        locks = ScopeLocks()
        assert WaitlistService(store, FakeNotifier(), locks=locks).locks is locks
