from fastapi import APIRouter, BackgroundTasks, Depends

from convopilot.dependencies import get_bridge, get_deduplicator
from convopilot.logging_config import get_logger
from convopilot.schemas.webhook import InboundWebhook, WebhookResponse
from convopilot.services.bridge import DispatchBridge, InboundEvent
from convopilot.services.dedup_service import MessageDeduplicator

logger = get_logger("webhook")

router = APIRouter()


async def _dispatch(bridge: DispatchBridge, event: InboundEvent) -> None:
    try:
        outcome = await bridge.handle_inbound(event)
        logger.info(
            "Inbound event handled",
            extra={"context": {"user_id": event.user_id, "from_me": event.from_me, "outcome": outcome.value}},
        )
    except Exception as e:
        logger.error(f"Inbound event failed: {e}", extra={"context": {"user_id": event.user_id}}, exc_info=True)


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(
    payload: InboundWebhook,
    background_tasks: BackgroundTasks,
    bridge: DispatchBridge = Depends(get_bridge),
    deduplicator: MessageDeduplicator = Depends(get_deduplicator),
):
    if not (payload.text or "").strip():
        return WebhookResponse(success=True, message="Empty message ignored")

    if await deduplicator.is_duplicate(payload.message_id):
        return WebhookResponse(success=True, message="Duplicate message")

    background_tasks.add_task(_dispatch, bridge, payload.to_event())
    return WebhookResponse(success=True, message="Accepted")
