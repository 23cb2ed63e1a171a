from fastapi import FastAPI

from convopilot.config import settings
from convopilot.dependencies import get_bridge
from convopilot.logging_config import get_logger, setup_logging
from convopilot.routers import admin, conversations, webhook

setup_logging(settings.log_level, settings.log_format, settings.log_mask_user_ids)

logger = get_logger("main")

app = FastAPI(
    title="ConvoPilot API",
    description="WhatsApp booking assistant backed by a language model",
    version="0.1.0",
)

app.include_router(webhook.router)
app.include_router(conversations.router)
app.include_router(admin.router)


@app.on_event("startup")
async def restore_conversations() -> None:
    try:
        active = get_bridge().lifecycle.restore()
        logger.info("Startup complete", extra={"context": {"active_conversations": active}})
    except Exception as exc:
        logger.error(
            "Failed to restore conversations",
            extra={"context": {"error": str(exc)}},
        )


@app.on_event("shutdown")
async def stop_aggregator() -> None:
    await get_bridge().aggregator.shutdown()


@app.get("/health")
async def health():
    return {"status": "ok"}
