from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class Treatment:
    id: str
    name: str
    duration_minutes: int
    buffer_minutes: int = 0


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    duration_minutes: int = 30
    buffer_minutes: int = 0
    max_per_hour: int = 1
    treatments: tuple[Treatment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TimeRange:
    start: str  # HH:MM
    end: str  # HH:MM


@dataclass(frozen=True)
class BookedAppointment:
    id: str
    user_key: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    duration_minutes: int = 30
    buffer_minutes: Optional[int] = None
    category_id: Optional[str] = None
    treatment_id: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class BookingRequest:
    user_key: str
    date: date
    time: str
    category: Category
    treatment: Optional[Treatment] = None
    title: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return self.treatment.duration_minutes if self.treatment else self.category.duration_minutes

    @property
    def buffer_minutes(self) -> int:
        return self.treatment.buffer_minutes if self.treatment else self.category.buffer_minutes


class BookingStatus(str, Enum):
    BOOKED = "booked"
    SLOT_TAKEN = "slot_taken"
    HOUR_FULL = "hour_full"
    USER_HOUR_TAKEN = "user_hour_taken"
    OUTSIDE_HOURS = "outside_hours"
    NOT_ON_GRID = "not_on_grid"
    IN_PAST = "in_past"


@dataclass(frozen=True)
class BookingOutcome:
    status: BookingStatus
    appointment: Optional[BookedAppointment] = None

    @property
    def ok(self) -> bool:
        return self.status == BookingStatus.BOOKED


class BookingBackend(ABC):
    """Availability and appointment book used by the booking directives."""

    @abstractmethod
    async def list_categories(self) -> List[Category]:
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def query_availability(
        self,
        day: date,
        category: Category,
        *,
        user_key: str = "",
        duration_minutes: Optional[int] = None,
        use_treatment_grid: bool = False,
    ) -> List[str]:
        """Free start times (HH:MM, ascending) for ``category`` on ``day``."""
        pass

    @abstractmethod
    async def book(self, request: BookingRequest) -> BookingOutcome:
        pass

    @abstractmethod
    async def cancel(self, appointment_id: str) -> bool:
        """False when no such appointment exists."""
        pass

    @abstractmethod
    async def list_appointments(self, user_key: str, from_date: date) -> List[BookedAppointment]:
        """Appointments on or after ``from_date``, ordered by date then time."""
        pass
