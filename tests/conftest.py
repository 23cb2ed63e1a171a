import asyncio
from datetime import date, datetime, timezone
from typing import List, Optional
from unittest.mock import Mock

import pytest

from convopilot.services.automation_settings_service import AutomationConfig, ProcessMode
from convopilot.services.booking import (
    BookedAppointment,
    BookingBackend,
    BookingOutcome,
    BookingRequest,
    BookingStatus,
    Category,
    Treatment,
)
from convopilot.services.bridge import DispatchBridge
from convopilot.services.debounce_service import MessageAggregator
from convopilot.services.directives import BookingHandlers, DirectiveExecutor
from convopilot.services.history_service import OUTGOING_ROLES, ChatHistoryStore, StoredMessage
from convopilot.services.lifecycle_service import ConversationLifecycleManager
from convopilot.services.llm import LLMProvider, LLMResponse
from convopilot.services.ready_message_service import CannedReply, ReadyMessageStore
from convopilot.services.transport_service import Transport

USER = "972501234567@s.whatsapp.net"


class FakeLLM(LLMProvider):
    def __init__(self, replies: Optional[List[str]] = None, default: str = "שלום! איך אפשר לעזור?", delay: float = 0.0):
        self.replies = list(replies or [])
        self.default = default
        self.delay = delay
        self.error: Optional[Exception] = None
        self.calls = []

    async def generate(self, history, prompt, *, system_instructions=None):
        self.calls.append({"history": list(history), "prompt": prompt, "system_instructions": system_instructions})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        content = self.replies.pop(0) if self.replies else self.default
        return LLMResponse(content=content, model="fake")


class FakeTransport(Transport):
    def __init__(self):
        self.sent = []
        self.media = []
        self.media_ok = True

    async def send_text(self, user_id, text):
        self.sent.append((user_id, text))
        return True

    async def send_media(self, user_id, media, caption=None):
        self.media.append((user_id, media, caption))
        return self.media_ok


class InMemoryHistory(ChatHistoryStore):
    def __init__(self):
        self.messages = {}

    def record(self, user_id, role, content):
        self.messages.setdefault(user_id, []).append(
            StoredMessage(role=role, content=content, created_at=datetime.now(timezone.utc))
        )

    def recent(self, user_id, limit):
        return list(self.messages.get(user_id, []))[-limit:]

    def last_outgoing(self, user_id):
        for message in reversed(self.messages.get(user_id, [])):
            if message.role in OUTGOING_ROLES:
                return message
        return None


class FakeReadyMessages(ReadyMessageStore):
    def __init__(self, replies=None):
        self.replies = {r.index: r for r in (replies or [])}

    def get_by_index(self, index):
        return self.replies.get(index)


class FakeBookingBackend(BookingBackend):
    def __init__(self):
        self.categories = [
            Category(
                id="c1",
                name="תספורת",
                duration_minutes=50,
                buffer_minutes=10,
                max_per_hour=1,
                treatments=(Treatment(id="t1", name="קצר", duration_minutes=30, buffer_minutes=5),),
            ),
            Category(id="c2", name="צבע", duration_minutes=90, buffer_minutes=0, max_per_hour=1),
        ]
        self.free = ["09:00", "10:00", "11:00"]
        self.book_status = BookingStatus.BOOKED
        self.appointments: List[BookedAppointment] = []
        self.availability_calls = []
        self.book_requests: List[BookingRequest] = []
        self.cancelled = []

    async def list_categories(self):
        return list(self.categories)

    async def get_category(self, category_id):
        return next((c for c in self.categories if c.id == category_id), None)

    async def query_availability(self, day, category, *, user_key="", duration_minutes=None, use_treatment_grid=False):
        self.availability_calls.append(
            {
                "day": day,
                "category": category,
                "user_key": user_key,
                "duration_minutes": duration_minutes,
                "use_treatment_grid": use_treatment_grid,
            }
        )
        return list(self.free)

    async def book(self, request):
        self.book_requests.append(request)
        if self.book_status != BookingStatus.BOOKED:
            return BookingOutcome(status=self.book_status)
        appointment = BookedAppointment(
            id=f"apt_{len(self.book_requests)}",
            user_key=request.user_key,
            date=request.date.isoformat(),
            time=request.time,
            category_id=request.category.id,
            title=request.title,
        )
        self.appointments.append(appointment)
        return BookingOutcome(status=BookingStatus.BOOKED, appointment=appointment)

    async def cancel(self, appointment_id):
        before = len(self.appointments)
        self.appointments = [a for a in self.appointments if a.id != appointment_id]
        if len(self.appointments) == before:
            return False
        self.cancelled.append(appointment_id)
        return True

    async def list_appointments(self, user_key, from_date: date):
        return [a for a in self.appointments if a.user_key == user_key]


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def automation_config():
    return AutomationConfig(
        mode=ProcessMode.AUTO,
        activation_words=("תור", "פגישה"),
        user_exit_words=("עצור", "stop"),
        operator_exit_words=("אני ממשיך מכאן",),
        instructions="אתה עוזר לקביעת תורים. {{CURRENT_DATETIME}}",
    )


@pytest.fixture
def config_holder(automation_config):
    holder = {"config": automation_config}
    return holder


@pytest.fixture
def lifecycle(config_holder):
    return ConversationLifecycleManager(config_provider=lambda: config_holder["config"])


@pytest.fixture
def aggregator():
    return MessageAggregator(
        delay_per_message=0.05,
        max_wait=0.3,
        min_wait=0.01,
        cooldown=0.02,
        max_lock=5.0,
    )


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def history():
    return InMemoryHistory()


@pytest.fixture
def booking_backend():
    return FakeBookingBackend()


@pytest.fixture
def ready_messages():
    return FakeReadyMessages()


@pytest.fixture
def executor(booking_backend, ready_messages):
    return DirectiveExecutor(BookingHandlers(booking_backend).registry(), ready_messages=ready_messages)


@pytest.fixture
def bridge(lifecycle, aggregator, llm, executor, transport, history):
    return DispatchBridge(lifecycle, aggregator, llm, executor, transport, history)
