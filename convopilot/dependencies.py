"""Process-wide service wiring for the FastAPI app."""

from typing import Optional

from fastapi import Header, HTTPException

from convopilot.config import settings
from convopilot.database import SessionLocal
from convopilot.services.automation_settings_service import make_config_provider
from convopilot.services.booking import SqlBookingService
from convopilot.services.bridge import DispatchBridge
from convopilot.services.debounce_service import MessageAggregator
from convopilot.services.dedup_service import MessageDeduplicator, get_redis
from convopilot.services.directives import BookingHandlers, DirectiveExecutor
from convopilot.services.history_service import SqlChatHistoryStore
from convopilot.services.lifecycle_service import ConversationLifecycleManager, SqlConversationStore
from convopilot.services.llm import get_llm_provider
from convopilot.services.ready_message_service import SqlReadyMessageStore
from convopilot.services.transport_service import GatewayTransport

_bridge: Optional[DispatchBridge] = None
_deduplicator: Optional[MessageDeduplicator] = None


def build_bridge() -> DispatchBridge:
    lifecycle = ConversationLifecycleManager(
        config_provider=make_config_provider(SessionLocal),
        store=SqlConversationStore(SessionLocal),
    )
    aggregator = MessageAggregator(
        delay_per_message=settings.debounce_delay_per_message_seconds,
        max_wait=settings.debounce_max_wait_seconds,
        min_wait=settings.debounce_min_wait_seconds,
        cooldown=settings.debounce_cooldown_seconds,
        max_lock=settings.debounce_max_lock_seconds,
    )
    handlers = BookingHandlers(SqlBookingService(SessionLocal, tz_name=settings.timezone), tz_name=settings.timezone)
    executor = DirectiveExecutor(
        handlers.registry(),
        ready_messages=SqlReadyMessageStore(SessionLocal, settings.ready_messages_media_dir),
    )
    transport = GatewayTransport(
        settings.whatsapp_gateway_url,
        token=settings.whatsapp_gateway_token,
        timeout_seconds=settings.whatsapp_send_timeout_seconds,
    )
    return DispatchBridge(
        lifecycle,
        aggregator,
        get_llm_provider(settings),
        executor,
        transport,
        SqlChatHistoryStore(SessionLocal),
        history_limit=settings.history_limit,
        stale_event_seconds=settings.stale_event_seconds,
        tz_name=settings.timezone,
    )


def get_bridge() -> DispatchBridge:
    global _bridge
    if _bridge is None:
        _bridge = build_bridge()
    return _bridge


def get_deduplicator() -> MessageDeduplicator:
    global _deduplicator
    if _deduplicator is None:
        _deduplicator = MessageDeduplicator(
            redis_client=get_redis(settings.redis_url, settings.redis_socket_timeout_seconds),
            ttl_seconds=settings.dedup_ttl_seconds,
        )
    return _deduplicator


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")
