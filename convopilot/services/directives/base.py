from dataclasses import dataclass, field
from typing import List, Optional

from convopilot.services.booking import BookedAppointment, Category, Treatment


@dataclass(frozen=True)
class ExecutionContext:
    user_id: str
    user_name: Optional[str] = None


@dataclass(frozen=True)
class CommandResult:
    replacement_text: str = ""
    ends_conversation: bool = False
    side_effects: dict = field(default_factory=dict)


@dataclass
class UserSession:
    """Lists last shown to one user, so "number=2" style parameters resolve."""

    categories: Optional[List[Category]] = None
    treatments_category_id: Optional[str] = None
    treatments: Optional[List[Treatment]] = None
    appointments: Optional[List[BookedAppointment]] = None

    def reset_booking_flow(self) -> None:
        self.categories = None
        self.treatments_category_id = None
        self.treatments = None
