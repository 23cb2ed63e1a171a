"""Booking directives.

Each handler turns parsed parameters into the text that replaces the directive.
Expected outcomes (nothing found, slot taken, missing input) are friendly
replies, never exceptions.
"""

from datetime import date, datetime
from typing import Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from convopilot.logging_config import get_logger
from convopilot.services.booking import BookingBackend, BookingRequest, BookingStatus, Category, Treatment
from convopilot.services.booking import slots
from convopilot.services.directives.base import CommandResult, ExecutionContext, UserSession
from convopilot.services.directives.replies import reply
from convopilot.services.identity import phone_key

logger = get_logger("directives.handlers")

Handler = Callable[[dict, ExecutionContext, UserSession], Awaitable[CommandResult]]

REJECTION_REPLIES = {
    BookingStatus.SLOT_TAKEN: "slot_taken",
    BookingStatus.HOUR_FULL: "no_room_this_hour",
    BookingStatus.USER_HOUR_TAKEN: "already_have_appointment_this_hour",
    BookingStatus.OUTSIDE_HOURS: "outside_business_hours",
    BookingStatus.NOT_ON_GRID: "time_not_in_list",
    BookingStatus.IN_PAST: "time_in_past",
}


def _positive_int(value) -> Optional[int]:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def _text(key: str, **values) -> CommandResult:
    return CommandResult(replacement_text=reply(key, **values))


class BookingHandlers:
    def __init__(self, backend: BookingBackend, tz_name: str = "Asia/Jerusalem"):
        self.backend = backend
        self.tz = ZoneInfo(tz_name)

    def registry(self) -> Dict[str, Handler]:
        return {
            "ABORT_BOOKING": self.abort_booking,
            "QUERY_CATEGORIES": self.query_categories,
            "QUERY_TREATMENTS": self.query_treatments,
            "QUERY_AVAILABILITY": self.query_availability,
            "BOOK_APPOINTMENT": self.book_appointment,
            "CANCEL_APPOINTMENT": self.cancel_appointment,
            "LIST_APPOINTMENTS": self.list_appointments,
        }

    def today(self) -> date:
        return datetime.now(self.tz).date()

    # ---------- resolution ----------

    async def _resolve_category(self, params: dict, session: UserSession) -> tuple[Optional[Category], Optional[str]]:
        """(category, None) or (None, reply key)."""
        category_id = (params.get("category_id") or "").strip()
        if not category_id:
            number = _positive_int(params.get("category_number"))
            if number is None:
                return None, "no_service_selected"
            listed = session.categories
            if not listed or len(listed) < number:
                listed = await self.backend.list_categories()
            if len(listed) < number:
                return None, "service_not_found_restart"
            category_id = listed[number - 1].id

        category = await self.backend.get_category(category_id)
        if category is None:
            return None, "service_not_found"
        return category, None

    @staticmethod
    def _resolve_treatment(params: dict, category: Category, session: UserSession) -> Optional[Treatment]:
        number = _positive_int(params.get("treatment_number"))
        if number is None or session.treatments_category_id != category.id:
            return None
        treatments = session.treatments or []
        if len(treatments) < number:
            return None
        return treatments[number - 1]

    # ---------- handlers ----------

    async def abort_booking(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        session.reset_booking_flow()
        logger.info("Booking flow aborted", extra={"context": {"user_id": context.user_id}})
        return _text("abort_booking")

    async def query_categories(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        categories = await self.backend.list_categories()
        if not categories:
            return _text("no_services_available")
        session.categories = categories
        lines = [f"{i}. {c.name}" for i, c in enumerate(categories, start=1)]
        return CommandResult(replacement_text="\n".join(lines))

    async def query_treatments(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        category, error = await self._resolve_category(params, session)
        if error:
            return _text(error)
        if not category.treatments:
            return _text("no_treatments_available")

        session.treatments_category_id = category.id
        session.treatments = list(category.treatments)
        lines = [f"{i}. {t.name}" for i, t in enumerate(category.treatments, start=1)]
        return CommandResult(replacement_text="\n".join(lines))

    async def query_availability(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        date_str = (params.get("date") or "").strip()
        if not date_str:
            return _text("no_date_provided")

        category, error = await self._resolve_category(params, session)
        if error:
            return _text(error)

        day = slots.parse_date(date_str)
        if day is None:
            return _text("invalid_date_format")

        treatment = self._resolve_treatment(params, category, session)
        free = await self.backend.query_availability(
            day,
            category,
            user_key=phone_key(context.user_id),
            duration_minutes=treatment.duration_minutes if treatment else None,
            use_treatment_grid=treatment is not None,
        )
        side_effects = {"query_availability": {"date": day.isoformat(), "category_id": category.id, "free": len(free)}}
        if not free:
            return CommandResult(replacement_text=reply("no_slots_that_date"), side_effects=side_effects)

        preferred = slots.normalize_time(params.get("preferred_time"))
        if preferred:
            if preferred in free:
                text = reply("preferred_time_available", time=preferred)
            else:
                text = reply("preferred_time_taken", time=preferred) + "\n" + "\n".join(free)
            return CommandResult(replacement_text=text, side_effects=side_effects)

        return CommandResult(replacement_text="\n".join(free), side_effects=side_effects)

    async def book_appointment(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        date_str = (params.get("date") or "").strip()
        time_raw = (params.get("time") or "").strip()
        if not date_str or not time_raw:
            return _text("missing_date_or_time")

        category, error = await self._resolve_category(params, session)
        if error:
            return _text(error)

        day = slots.parse_date(date_str)
        if day is None:
            return _text("invalid_date")
        time_str = slots.normalize_time(time_raw)
        if not time_str:
            return _text("invalid_time")

        user_key = phone_key(context.user_id)
        if not user_key:
            return _text("cannot_identify_user")

        treatment = self._resolve_treatment(params, category, session)
        service = f"{category.name} - {treatment.name}" if treatment else (category.name or reply("default_service_label"))
        name = (context.user_name or "").strip() or user_key
        title = reply("appointment_title_with_name", name=name, service=service)

        outcome = await self.backend.book(
            BookingRequest(
                user_key=user_key,
                date=day,
                time=time_str,
                category=category,
                treatment=treatment,
                title=title,
            )
        )
        if not outcome.ok:
            return CommandResult(
                replacement_text=reply(REJECTION_REPLIES.get(outcome.status, "slot_taken")),
                side_effects={"book": {"status": outcome.status.value}},
            )

        session.reset_booking_flow()
        text = reply("book_success", date_display=slots.format_day(day), time=time_str, service=service)
        return CommandResult(
            replacement_text=text,
            ends_conversation=True,
            side_effects={"book": {"status": outcome.status.value, "appointment_id": outcome.appointment.id}},
        )

    async def cancel_appointment(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        appointment_id = (params.get("appointment_id") or "").strip()
        number = _positive_int(params.get("number"))
        if not appointment_id and number is None:
            return _text("cancel_no_number")

        if not appointment_id:
            if not phone_key(context.user_id):
                return _text("cannot_identify_user")
            listed = session.appointments or []
            if len(listed) < number:
                return _text("cancel_appointment_not_found")
            appointment_id = listed[number - 1].id

        if not await self.backend.cancel(appointment_id):
            return _text("appointment_not_found_or_cancelled")

        session.appointments = None
        return CommandResult(
            replacement_text=reply("cancel_success"),
            side_effects={"cancel": {"appointment_id": appointment_id}},
        )

    async def list_appointments(self, params: dict, context: ExecutionContext, session: UserSession) -> CommandResult:
        user_key = phone_key((params.get("user_id") or "").strip() or context.user_id)
        if not user_key:
            return _text("list_cannot_display")

        appointments = await self.backend.list_appointments(user_key, self.today())
        if not appointments:
            return _text("no_future_appointments")

        session.appointments = appointments
        lines = []
        for i, appointment in enumerate(appointments, start=1):
            day = slots.parse_date(appointment.date)
            line = f"{i}. {slots.format_day(day) if day else appointment.date} בשעה {appointment.time or '--:--'}"
            if appointment.title:
                line += f" – {appointment.title}"
            lines.append(line)
        return CommandResult(replacement_text="\n".join(lines))
