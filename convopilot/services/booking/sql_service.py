from datetime import date, datetime, timezone
from typing import Callable, List, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from convopilot.logging_config import get_logger
from convopilot.models import Appointment, BusinessHoursRange, ServiceCategory
from convopilot.services.booking import slots
from convopilot.services.booking.base import (
    BookedAppointment,
    BookingBackend,
    BookingOutcome,
    BookingRequest,
    BookingStatus,
    Category,
    TimeRange,
    Treatment,
)

logger = get_logger("booking")


def _to_category(row: ServiceCategory) -> Category:
    treatments = []
    for item in row.treatments or []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        treatments.append(
            Treatment(
                id=str(item["id"]),
                name=str(item.get("name") or ""),
                duration_minutes=int(item.get("duration_minutes") or row.duration_minutes or 30),
                buffer_minutes=int(item.get("buffer_minutes") or 0),
            )
        )
    return Category(
        id=row.id,
        name=row.name,
        duration_minutes=row.duration_minutes or 30,
        buffer_minutes=row.buffer_minutes or 0,
        max_per_hour=row.max_per_hour or 1,
        treatments=tuple(treatments),
    )


def _to_appointment(row: Appointment) -> BookedAppointment:
    return BookedAppointment(
        id=row.id,
        user_key=row.user_key,
        date=row.date,
        time=row.time,
        duration_minutes=row.duration_minutes or slots.DEFAULT_DURATION_MINUTES,
        buffer_minutes=row.buffer_minutes,
        category_id=row.category_id,
        treatment_id=row.treatment_id,
        title=row.title,
    )


class SqlBookingService(BookingBackend):
    """Appointment book stored in PostgreSQL."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        tz_name: str = "Asia/Jerusalem",
        now_func: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.tz = ZoneInfo(tz_name)
        self._now_func = now_func

    def now(self) -> datetime:
        if self._now_func is not None:
            return self._now_func()
        return datetime.now(self.tz)

    # ---------- catalogue ----------

    async def list_categories(self) -> List[Category]:
        db = self.session_factory()
        try:
            rows = db.query(ServiceCategory).order_by(ServiceCategory.position, ServiceCategory.name).all()
            return [_to_category(r) for r in rows]
        finally:
            db.close()

    async def get_category(self, category_id: str) -> Optional[Category]:
        db = self.session_factory()
        try:
            row = db.query(ServiceCategory).filter(ServiceCategory.id == category_id).first()
            return _to_category(row) if row else None
        finally:
            db.close()

    # ---------- availability ----------

    async def query_availability(
        self,
        day: date,
        category: Category,
        *,
        user_key: str = "",
        duration_minutes: Optional[int] = None,
        use_treatment_grid: bool = False,
    ) -> List[str]:
        db = self.session_factory()
        try:
            ranges = self._ranges_for(db, day)
            occupied = self._occupancy_for(db, day)
        finally:
            db.close()

        return slots.free_slots(
            day,
            category,
            ranges,
            occupied,
            user_key=user_key,
            duration_minutes=duration_minutes,
            use_treatment_grid=use_treatment_grid,
            now=self.now(),
        )

    # ---------- appointments ----------

    async def book(self, request: BookingRequest) -> BookingOutcome:
        time_str = slots.normalize_time(request.time)
        db = self.session_factory()
        try:
            ranges = self._ranges_for(db, request.date)
            occupied = self._occupancy_for(db, request.date)
            status = slots.check_booking(
                time_str,
                request.category,
                ranges,
                occupied,
                user_key=request.user_key,
                duration_minutes=request.duration_minutes,
                use_treatment_grid=request.treatment is not None,
                day=request.date,
                now=self.now(),
            )
            if status != BookingStatus.BOOKED:
                logger.info(
                    "Booking rejected",
                    extra={
                        "context": {
                            "user_key": request.user_key,
                            "date": request.date.isoformat(),
                            "time": time_str,
                            "status": status.value,
                        }
                    },
                )
                return BookingOutcome(status=status)

            row = Appointment(
                id=f"apt_{uuid4().hex[:16]}",
                user_key=request.user_key,
                date=request.date.isoformat(),
                time=time_str,
                duration_minutes=max(1, request.duration_minutes or slots.DEFAULT_DURATION_MINUTES),
                buffer_minutes=request.buffer_minutes,
                category_id=request.category.id,
                treatment_id=request.treatment.id if request.treatment else None,
                title=request.title,
                created_at=datetime.now(timezone.utc),
            )
            db.add(row)
            db.commit()
            appointment = _to_appointment(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(
            "Appointment booked",
            extra={
                "context": {
                    "appointment_id": appointment.id,
                    "user_key": appointment.user_key,
                    "date": appointment.date,
                    "time": appointment.time,
                }
            },
        )
        return BookingOutcome(status=BookingStatus.BOOKED, appointment=appointment)

    async def cancel(self, appointment_id: str) -> bool:
        db = self.session_factory()
        try:
            row = db.query(Appointment).filter(Appointment.id == appointment_id).first()
            if row is None:
                return False
            db.delete(row)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("Appointment cancelled", extra={"context": {"appointment_id": appointment_id}})
        return True

    async def list_appointments(self, user_key: str, from_date: date) -> List[BookedAppointment]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Appointment)
                .filter(Appointment.user_key == user_key, Appointment.date >= from_date.isoformat())
                .order_by(Appointment.date, Appointment.time)
                .all()
            )
            return [_to_appointment(r) for r in rows]
        finally:
            db.close()

    # ---------- helpers ----------

    def _ranges_for(self, db: Session, day: date) -> List[TimeRange]:
        rows = db.query(BusinessHoursRange).filter(BusinessHoursRange.day_of_week == slots.day_key(day)).all()
        ranges = [TimeRange(start=r.start, end=r.end) for r in rows]
        return slots.hours_for_day({slots.day_key(day): ranges}, day)

    def _occupancy_for(self, db: Session, day: date) -> List[slots.Occupancy]:
        rows = db.query(Appointment).filter(Appointment.date == day.isoformat()).all()
        buffers = {c.id: c.buffer_minutes or 0 for c in db.query(ServiceCategory).all()}
        return slots.build_occupancy([_to_appointment(r) for r in rows], buffers)
