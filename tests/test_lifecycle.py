import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from src.bookings.lifecycle import BookingLifecycle, assert_transition, days_until
from src.bookings.schemas import BookingStatus
from src.collaborators.base import BookingStore
from src.exceptions import (
    CancellationIneligible, InvalidStatusTransition, TransientCollaboratorError, ValidationError
)

def _in_days(today, days):
    return (today + timedelta(days=days)).isoformat()

def test_pending_three_days_ahead_is_cancellable(today, make_booking, make_fake):
    booking = make_booking(status=BookingStatus.PENDING, booking_date=_in_days(today, 3))

    assert BookingLifecycle(make_fake(), window_days=3).can_cancel(booking, today) is True

def test_confirmed_two_days_ahead_is_not(today, make_booking, make_fake):
    booking = make_booking(status=BookingStatus.CONFIRMED, booking_date=_in_days(today, 2))

    assert BookingLifecycle(make_fake(), window_days=3).can_cancel(booking, today) is False

@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
def test_terminal_statuses_never_cancellable(today, make_booking, make_fake, status):
    booking = make_booking(status=status, booking_date=_in_days(today, 30))
    lifecycle = BookingLifecycle(make_fake(), window_days=3)

    assert lifecycle.can_cancel(booking, today) is False
    assert "cannot be cancelled" in lifecycle.eligibility(booking, today).reason

def test_travel_datetime_counts_calendar_days(today):
    assert days_until(f"{_in_days(today, 3)}T23:30:00", today) == 3
    assert days_until(_in_days(today, -1), today) == -1

def test_unreadable_travel_date_is_a_validation_error(today, make_booking, make_fake, caller):
    booking = make_booking(status=BookingStatus.PENDING, booking_date="22/07/2025")
    lifecycle = BookingLifecycle(make_fake(), window_days=3)

    with pytest.raises(ValidationError, match="Invalid date format"):
        lifecycle.eligibility(booking, today)
    with pytest.raises(ValidationError):
        lifecycle.cancel(booking, caller, today)

def test_ineligible_cancel_never_reaches_store(today, make_booking, caller):
    store = MagicMock(spec=BookingStore)
    booking = make_booking(status=BookingStatus.CONFIRMED, booking_date=_in_days(today, 1))

    with pytest.raises(CancellationIneligible):
        BookingLifecycle(store, window_days=3).cancel(booking, caller, today)

    store.cancel_booking.assert_not_called()

def test_cancel_marks_booking_cancelled(today, make_booking, caller, make_fake):
    store = make_fake()
    booking = make_booking(status=BookingStatus.PENDING, booking_date=_in_days(today, 5))
    store.bookings[booking.id] = booking

    cancelled = BookingLifecycle(store, window_days=3).cancel(booking, caller, today)

    assert cancelled.status == BookingStatus.CANCELLED
    assert store.bookings[booking.id].status == BookingStatus.CANCELLED

def test_store_failure_leaves_status_unchanged(today, make_booking, caller):
    store = MagicMock(spec=BookingStore)
    store.cancel_booking.side_effect = TransientCollaboratorError("booking store")
    booking = make_booking(status=BookingStatus.CONFIRMED, booking_date=_in_days(today, 10))

    with pytest.raises(TransientCollaboratorError):
        BookingLifecycle(store, window_days=3).cancel(booking, caller, today)

    assert booking.status == BookingStatus.CONFIRMED

def test_status_counts_cached_until_cancel(today, make_booking, caller, make_fake):
    store = make_fake()
    first = make_booking(id="TICK-1", status=BookingStatus.CONFIRMED, booking_date=_in_days(today, 10))
    second = make_booking(id="TICK-2", status=BookingStatus.PENDING, booking_date=_in_days(today, 10))
    store.bookings = {first.id: first, second.id: second}
    lifecycle = BookingLifecycle(store, window_days=3)

    counts = lifecycle.status_counts(caller)
    lifecycle.status_counts(caller)

    assert counts.counts[BookingStatus.CONFIRMED] == 1
    assert counts.counts[BookingStatus.PENDING] == 1
    assert counts.total == 2
    assert store.calls.count("list_bookings") == 1

    lifecycle.cancel(first, caller, today)
    refreshed = lifecycle.status_counts(caller)

    assert refreshed.counts[BookingStatus.CANCELLED] == 1
    assert refreshed.counts[BookingStatus.CONFIRMED] == 0
    assert store.calls.count("list_bookings") == 2

def test_shared_counts_cache_across_instances(caller, make_fake):
    store = make_fake()
    cache = {}

    BookingLifecycle(store, counts_cache=cache).status_counts(caller)
    BookingLifecycle(store, counts_cache=cache).status_counts(caller)

    assert store.calls.count("list_bookings") == 1

def test_counts_refresh_after_external_confirmation(today, make_booking, caller, make_fake, monkeypatch):
    store = make_fake()
    booking = make_booking(status=BookingStatus.PENDING, booking_date=_in_days(today, 10))
    store.bookings[booking.id] = booking
    lifecycle = BookingLifecycle(store, counts_ttl=timedelta(seconds=60))
    now = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("src.bookings.lifecycle._now", lambda: now)

    assert lifecycle.status_counts(caller).counts[BookingStatus.PENDING] == 1

    # Confirmed by the store, not through this service
    store.bookings[booking.id] = booking.model_copy(update={"status": BookingStatus.CONFIRMED})
    assert lifecycle.status_counts(caller).counts[BookingStatus.PENDING] == 1

    later = now + timedelta(seconds=61)
    monkeypatch.setattr("src.bookings.lifecycle._now", lambda: later)
    counts = lifecycle.status_counts(caller).counts

    assert counts[BookingStatus.CONFIRMED] == 1
    assert counts[BookingStatus.PENDING] == 0

@pytest.mark.parametrize("current,target", [
    (BookingStatus.PENDING, BookingStatus.CONFIRMED),
    (BookingStatus.PENDING, BookingStatus.CANCELLED),
    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
    (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
])
def test_allowed_transitions(current, target):
    assert_transition(current, target)

@pytest.mark.parametrize("current,target", [
    (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
    (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    (BookingStatus.PENDING, BookingStatus.COMPLETED),
])
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidStatusTransition):
        assert_transition(current, target)
