import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from convopilot.logging_config import get_logger

logger = get_logger("transport")


@dataclass(frozen=True)
class MediaPayload:
    data: bytes
    mime_type: str
    filename: str


class Transport(ABC):
    """Outbound side of the chat channel."""

    @abstractmethod
    async def send_text(self, user_id: str, text: str) -> bool:
        pass

    @abstractmethod
    async def send_media(self, user_id: str, media: MediaPayload, caption: Optional[str] = None) -> bool:
        pass


class GatewayTransport(Transport):
    """Sends through a WhatsApp HTTP gateway (``/send-text`` and ``/send-media``)."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout_seconds: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, endpoint: str, payload: dict, user_id: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(f"{self.base_url}/{endpoint}", headers=self._headers(), json=payload)
            logger.info(
                f"Gateway response: status={response.status_code}, endpoint={endpoint}, body={response.text[:200]}",
                extra={"context": {"user_id": user_id}},
            )
            return response.status_code == 200
        except Exception as e:
            logger.error(f"Error sending WhatsApp message: {e}", extra={"context": {"user_id": user_id}})
            return False

    async def send_text(self, user_id: str, text: str) -> bool:
        if not user_id or not text:
            logger.warning("send_text: missing user_id or text", extra={"context": {"user_id": user_id}})
            return False
        return await self._post("send-text", {"to": user_id, "text": text}, user_id)

    async def send_media(self, user_id: str, media: MediaPayload, caption: Optional[str] = None) -> bool:
        if not user_id or not media or not media.data:
            logger.warning("send_media: missing user_id or media", extra={"context": {"user_id": user_id}})
            return False
        payload = {
            "to": user_id,
            "mimeType": media.mime_type,
            "filename": media.filename,
            "data": base64.b64encode(media.data).decode("ascii"),
        }
        if caption and caption.strip():
            payload["caption"] = caption.strip()
        return await self._post("send-media", payload, user_id)
