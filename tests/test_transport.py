import base64
import logging
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from convopilot.services.transport_service import GatewayTransport, MediaPayload

USER = "972501234567@s.whatsapp.net"


def _mock_client(mock_client_class, status_code=200):
    mock_client = MagicMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client

    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.text = "ok"
    mock_client.post = AsyncMock(return_value=mock_response)
    return mock_client


class TestSendText:
    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_posts_to_gateway(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)
        transport = GatewayTransport("http://gateway/api/", token="t0k")

        result = await transport.send_text(USER, "שלום")

        assert result is True
        call_args = mock_client.post.call_args
        assert call_args[0][0] == "http://gateway/api/send-text"
        assert call_args[1]["json"] == {"to": USER, "text": "שלום"}
        assert call_args[1]["headers"]["Authorization"] == "Bearer t0k"

    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_no_token_no_auth_header(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)

        await GatewayTransport("http://gateway/api").send_text(USER, "שלום")

        assert "Authorization" not in mock_client.post.call_args[1]["headers"]

    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_gateway_error_returns_false(self, mock_client_class):
        _mock_client(mock_client_class, status_code=502)

        assert await GatewayTransport("http://gateway/api").send_text(USER, "שלום") is False

    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_exception_returns_false(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)
        mock_client.post.side_effect = RuntimeError("connection reset")

        assert await GatewayTransport("http://gateway/api").send_text(USER, "שלום") is False

    @pytest.mark.asyncio
    async def test_empty_text_not_sent(self):
        assert await GatewayTransport("http://gateway/api").send_text(USER, "") is False

    @pytest.mark.asyncio
    async def test_skip_warning_keeps_address_in_context(self, caplog):
        with caplog.at_level(logging.WARNING, logger="convopilot.transport"):
            await GatewayTransport("http://gateway/api").send_text(USER, "")

        record = caplog.records[-1]
        assert USER not in record.getMessage()
        assert record.context == {"user_id": USER}


class TestSendMedia:
    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_posts_base64_with_caption(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)
        media = MediaPayload(data=b"%PDF-1.4", mime_type="application/pdf", filename="prices.pdf")

        result = await GatewayTransport("http://gateway/api").send_media(USER, media, caption=" המחירון ")

        assert result is True
        call_args = mock_client.post.call_args
        assert call_args[0][0] == "http://gateway/api/send-media"
        json_data = call_args[1]["json"]
        assert json_data["mimeType"] == "application/pdf"
        assert json_data["filename"] == "prices.pdf"
        assert base64.b64decode(json_data["data"]) == b"%PDF-1.4"
        assert json_data["caption"] == "המחירון"

    @pytest.mark.asyncio
    @patch("convopilot.services.transport_service.httpx.AsyncClient")
    async def test_blank_caption_omitted(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)
        media = MediaPayload(data=b"img", mime_type="image/png", filename="a.png")

        await GatewayTransport("http://gateway/api").send_media(USER, media, caption="  ")

        assert "caption" not in mock_client.post.call_args[1]["json"]

    @pytest.mark.asyncio
    async def test_empty_media_not_sent(self):
        media = MediaPayload(data=b"", mime_type="image/png", filename="a.png")
        assert await GatewayTransport("http://gateway/api").send_media(USER, media) is False
