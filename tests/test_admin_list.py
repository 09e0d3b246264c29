"""Test the admin booking list: filters, status changes, deletes and cache refresh."""
from datetime import date
from unittest import mock

import pytest

from agenda import models
from agenda.errors import NotFoundError, SlotUnavailableError, StoreError, ValidationError
from agenda.services.admin_list import (
    AdminBookingList,
    BookingCache,
    BookingFilter,
    booking_stats,
    filter_bookings,
)
from agenda.services.conflicts import has_conflict


@pytest.fixture
def sample(services, make_user, make_booking):
    """Three patients spread over two days."""
    tanaka = make_user(name="Tanaka Yuki", phone="090-1111-2222", email="yuki@example.com")
    sato = make_user(name="Sato Ken", phone="080-3333-4444", email="ken.sato@example.com")
    mori = make_user(name="Mori Aya", phone="070-5555-6666", email="aya@example.com")
    return {
        "tanaka": make_booking(tanaka, booking_time="09:00", chart_number="C-100"),
        "sato": make_booking(sato, booking_time="10:00", status=models.BookingStatus.pending,
                             service_id="massage"),
        "mori": make_booking(mori, booking_date="2025-08-02", booking_time="14:00",
                             status=models.BookingStatus.completed, service_id="sports"),
    }


class TestFilters:
    """Search, status and date filters combine with AND."""

    def ids(self, store, **kwargs):
        return [r.id for r in AdminBookingList(store).filtered(BookingFilter(**kwargs))]

    def test_no_filter_lists_everything_in_order(self, store, sample):
        assert self.ids(store) == [sample["tanaka"].id, sample["sato"].id, sample["mori"].id]

    def test_search_is_case_insensitive_on_name(self, store, sample):
        assert self.ids(store, search="tanaka") == [sample["tanaka"].id]
        assert self.ids(store, search="SATO") == [sample["sato"].id]

    def test_search_phone_chart_and_email(self, store, sample):
        assert self.ids(store, search="5555") == [sample["mori"].id]
        assert self.ids(store, search="c-100") == [sample["tanaka"].id]
        assert self.ids(store, search="ken.sato@") == [sample["sato"].id]

    def test_status_filter(self, store, sample):
        assert self.ids(store, status="pending") == [sample["sato"].id]
        assert self.ids(store, status="all") == [sample["tanaka"].id, sample["sato"].id, sample["mori"].id]

    def test_date_filter(self, store, sample):
        assert self.ids(store, booking_date="2025-08-02") == [sample["mori"].id]

    def test_filters_combine(self, store, sample):
        assert self.ids(store, search="example.com", status="confirmed", booking_date="2025-08-01") == [
            sample["tanaka"].id
        ]
        assert self.ids(store, search="mori", booking_date="2025-08-01") == []

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            BookingFilter(status="archived")

    def test_filter_function_on_rows(self, store, sample):
        rows = AdminBookingList(store).rows
        assert len(filter_bookings(rows, BookingFilter(search="aya"))) == 1


class TestRows:
    """Rows are flat snapshots with patient data joined in."""

    def test_row_contents(self, store, sample):
        row = AdminBookingList(store).cache.get(sample["sato"].id)
        assert row.name == "Sato Ken"
        assert row.phone == "080-3333-4444"
        assert row.email == "ken.sato@example.com"
        assert row.service_id == "massage"
        assert row.price == 5000
        data = row.to_dict()
        assert data["booking_date"] == "2025-08-01"
        assert data["status"] == "pending"


class TestStats:
    """Test the dashboard counters."""

    def test_stats(self, store, sample):
        stats = AdminBookingList(store).stats(today=date(2025, 8, 1))
        assert stats == {
            "total": 3,
            "confirmed": 1,
            "pending": 1,
            "completed": 1,
            "cancelled": 0,
            "today": 2,
            "revenue": 4500,
        }

    def test_empty(self):
        assert booking_stats([], today=date(2025, 8, 1))["total"] == 0


class TestStatusChanges:
    """Status changes are reflected locally and rolled back on failure."""

    def test_set_status(self, db, store, sample):
        admin = AdminBookingList(store)
        row = admin.set_status(sample["sato"].id, "confirmed")
        assert row.status == "confirmed"
        assert admin.cache.get(sample["sato"].id).status == "confirmed"
        db.expire_all()
        assert store.get_booking(sample["sato"].id).status == models.BookingStatus.confirmed

    def test_cancel_frees_slot(self, store, sample):
        AdminBookingList(store).set_status(sample["tanaka"].id, "cancelled")
        assert has_conflict(store, "2025-08-01", "09:00") is False

    def test_failed_write_restores_previous_status(self, store, sample):
        admin = AdminBookingList(store)
        with mock.patch.object(store, "update_booking", side_effect=StoreError()):
            with pytest.raises(StoreError):
                admin.set_status(sample["sato"].id, "confirmed")
        assert admin.cache.get(sample["sato"].id).status == "pending"

    def test_reactivation_into_taken_slot_is_rolled_back(self, store, sample, make_user, make_booking):
        admin = AdminBookingList(store)
        admin.set_status(sample["tanaka"].id, "cancelled")
        make_booking(make_user(), booking_time="09:00")
        admin.cache.load()
        with pytest.raises(SlotUnavailableError):
            admin.set_status(sample["tanaka"].id, "confirmed")
        assert admin.cache.get(sample["tanaka"].id).status == "cancelled"

    def test_invalid_status(self, store, sample):
        with pytest.raises(ValidationError):
            AdminBookingList(store).set_status(sample["sato"].id, "no-show")

    def test_unknown_booking(self, store, sample):
        with pytest.raises(NotFoundError):
            AdminBookingList(store).set_status(999, "confirmed")

    def test_update_details(self, store, sample):
        admin = AdminBookingList(store)
        row = admin.update_details(sample["sato"].id, notes="traer estudios", chart_number="C-200")
        assert (row.notes, row.chart_number) == ("traer estudios", "C-200")
        with pytest.raises(ValidationError):
            admin.update_details(sample["sato"].id)


class TestDelete:
    """Hard delete removes the booking everywhere."""

    def test_delete(self, store, sample):
        admin = AdminBookingList(store)
        admin.delete(sample["mori"].id)
        assert admin.cache.get(sample["mori"].id) is None
        assert store.get_booking(sample["mori"].id) is None

    def test_delete_missing(self, store, sample):
        with pytest.raises(NotFoundError):
            AdminBookingList(store).delete(999)


class TestCacheRefresh:
    """Any change notification replaces the local list with a fresh load."""

    def test_reloads_on_external_change(self, store, sample, make_user):
        cache = BookingCache(store)
        cache.load()
        cache.attach()

        store.update_booking(sample["sato"].id, status="cancelled")
        assert cache.get(sample["sato"].id).status == "cancelled"

        new = store.create_booking(make_user().id, "general", "2025-08-03", "11:00")
        assert cache.get(new.id) is not None

        store.delete_booking(sample["mori"].id)
        assert cache.get(sample["mori"].id) is None

    def test_detach_stops_updates(self, store, sample):
        cache = BookingCache(store)
        cache.load()
        cache.attach()
        cache.detach()
        store.update_booking(sample["sato"].id, status="cancelled")
        assert cache.get(sample["sato"].id).status == "pending"

    def test_attach_is_idempotent(self, store, sample):
        cache = BookingCache(store)
        first = cache.attach()
        assert cache.attach() is first
        assert len(store.hub) == 1
