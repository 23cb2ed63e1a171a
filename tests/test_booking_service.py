from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest

from convopilot.models import Appointment, BusinessHoursRange, ServiceCategory
from convopilot.services.booking import BookingRequest, BookingStatus, Category, SqlBookingService

MONDAY = date(2030, 1, 7)
HAIRCUT = Category(id="c1", name="תספורת", duration_minutes=50, buffer_minutes=10, max_per_hour=1)


def _mock_db(hours=(), appointments=(), categories=()):
    data = {
        BusinessHoursRange: list(hours),
        Appointment: list(appointments),
        ServiceCategory: list(categories),
    }

    def query(model):
        rows = data[model]
        q = Mock()
        q.all.return_value = rows
        q.filter.return_value.all.return_value = rows
        q.filter.return_value.first.return_value = rows[0] if rows else None
        q.filter.return_value.order_by.return_value.all.return_value = rows
        q.order_by.return_value.all.return_value = rows
        return q

    db = Mock()
    db.query.side_effect = query
    return db


def _hours(start, end):
    return SimpleNamespace(day_of_week="monday", start=start, end=end)


def _appointment_row(id="apt_1", time="10:00", category_id="c1", user_key="972500000000"):
    return SimpleNamespace(
        id=id,
        user_key=user_key,
        date=MONDAY.isoformat(),
        time=time,
        duration_minutes=50,
        buffer_minutes=None,
        category_id=category_id,
        treatment_id=None,
        title="פגישה",
    )


def _category_row():
    return SimpleNamespace(
        id="c1",
        name="תספורת",
        duration_minutes=50,
        buffer_minutes=10,
        max_per_hour=1,
        treatments=[{"id": "t1", "name": "קצר", "duration_minutes": 30}, {"name": "ללא מזהה"}],
    )


def _service(db, now=None):
    now = now or datetime(2030, 1, 1, 12, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
    return SqlBookingService(lambda: db, now_func=lambda: now)


class TestCatalogue:
    @pytest.mark.asyncio
    async def test_list_categories(self):
        db = _mock_db(categories=[_category_row()])

        categories = await _service(db).list_categories()

        assert len(categories) == 1
        category = categories[0]
        assert (category.id, category.duration_minutes, category.buffer_minutes) == ("c1", 50, 10)
        assert [t.id for t in category.treatments] == ["t1"]
        assert category.treatments[0].duration_minutes == 30
        db.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_missing_category(self):
        assert await _service(_mock_db()).get_category("nope") is None


class TestAvailability:
    @pytest.mark.asyncio
    async def test_free_slots_for_configured_hours(self):
        db = _mock_db(
            hours=[_hours("09:00", "12:00")],
            appointments=[_appointment_row(time="10:00")],
            categories=[_category_row()],
        )

        free = await _service(db).query_availability(MONDAY, HAIRCUT)

        assert free == ["09:00", "11:00"]
        db.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_default_hours_when_day_not_configured(self):
        free = await _service(_mock_db()).query_availability(MONDAY, HAIRCUT)

        assert free[0] == "09:00"
        assert free[-1] == "17:00"
        assert len(free) == 9

    @pytest.mark.asyncio
    async def test_today_skips_past_starts(self):
        now = datetime(2030, 1, 7, 10, 30, tzinfo=ZoneInfo("Asia/Jerusalem"))
        db = _mock_db(hours=[_hours("09:00", "12:00")])

        free = await _service(db, now=now).query_availability(MONDAY, HAIRCUT)

        assert free == ["11:00"]


class TestBook:
    def _request(self, time="11:00"):
        return BookingRequest(user_key="972501234567", date=MONDAY, time=time, category=HAIRCUT, title="פגישה")

    @pytest.mark.asyncio
    async def test_books_free_slot(self):
        db = _mock_db(hours=[_hours("09:00", "12:00")], appointments=[_appointment_row(time="10:00")])

        outcome = await _service(db).book(self._request("11"))

        assert outcome.ok
        assert outcome.appointment.time == "11:00"
        assert outcome.appointment.id.startswith("apt_")
        added = db.add.call_args[0][0]
        assert added.date == "2030-01-07"
        assert added.duration_minutes == 50
        assert added.buffer_minutes == 10
        db.commit.assert_called_once()
        db.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_taken_slot_rejected(self):
        db = _mock_db(hours=[_hours("09:00", "12:00")], appointments=[_appointment_row(time="10:00")])

        outcome = await _service(db).book(self._request("10:00"))

        assert outcome.status == BookingStatus.SLOT_TAKEN
        assert outcome.appointment is None
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_past_date_rejected(self):
        now = datetime(2030, 1, 10, 8, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
        db = _mock_db(hours=[_hours("09:00", "12:00")])

        outcome = await _service(db, now=now).book(self._request("10:00"))

        assert outcome.status == BookingStatus.IN_PAST
        assert not outcome.ok
        db.add.assert_not_called()
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_earlier_slot_today_rejected(self):
        now = datetime(2030, 1, 7, 10, 15, tzinfo=ZoneInfo("Asia/Jerusalem"))
        db = _mock_db(hours=[_hours("09:00", "12:00")])

        outcome = await _service(db, now=now).book(self._request("10:00"))

        assert outcome.status == BookingStatus.IN_PAST

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self):
        db = _mock_db(hours=[_hours("09:00", "12:00")])
        db.commit.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await _service(db).book(self._request("09:00"))

        db.rollback.assert_called_once()
        db.close.assert_called_once()


class TestCancelAndList:
    @pytest.mark.asyncio
    async def test_cancel_existing(self):
        row = _appointment_row()
        db = _mock_db(appointments=[row])

        assert await _service(db).cancel("apt_1") is True
        db.delete.assert_called_once_with(row)
        db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_missing(self):
        db = _mock_db()

        assert await _service(db).cancel("apt_404") is False
        db.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_appointments(self):
        db = _mock_db(appointments=[_appointment_row(id="apt_1"), _appointment_row(id="apt_2", time="11:00")])

        appointments = await _service(db).list_appointments("972500000000", MONDAY)

        assert [a.id for a in appointments] == ["apt_1", "apt_2"]
        assert appointments[0].buffer_minutes is None
