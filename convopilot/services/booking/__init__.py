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
from convopilot.services.booking.sql_service import SqlBookingService

__all__ = [
    "BookedAppointment",
    "BookingBackend",
    "BookingOutcome",
    "BookingRequest",
    "BookingStatus",
    "Category",
    "SqlBookingService",
    "TimeRange",
    "Treatment",
]
