"""MSG91 SMS transport.

Uses the flow API when a DLT template id is configured for the
template, otherwise the direct sendhttp API. No retries here; the
dispatcher records the failure and the caller decides.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import ExternalServiceError
from app.utils.normalization import extract_phone_last4

logger = logging.getLogger(__name__)

SERVICE_NAME = "sms"
DIRECT_SUCCESS_MESSAGE = "SMS sent successfully."


def _error_detail(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        detail = data.get("message") or data.get("error")
        return str(detail) if detail else None
    return None


class Msg91SmsTransport:
    """Process-wide MSG91 sender. One short-lived httpx client per send."""

    def __init__(
        self,
        *,
        auth_key: str | None = None,
        sender_id: str | None = None,
        route: str | None = None,
        country: str | None = None,
        template_ids: dict[str, str] | None = None,
        timeout: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.auth_key = auth_key if auth_key is not None else settings.MSG91_AUTH_KEY
        self.sender_id = sender_id if sender_id is not None else settings.MSG91_SENDER_ID
        self.route = route if route is not None else settings.MSG91_ROUTE
        self.country = country if country is not None else settings.MSG91_COUNTRY
        self.template_ids = template_ids if template_ids is not None else settings.msg91_template_ids
        self.timeout = timeout if timeout is not None else settings.SMS_TIMEOUT_SECONDS
        self.flow_url = settings.MSG91_FLOW_URL
        self.send_url = settings.MSG91_SEND_URL
        # Injected in tests (httpx.MockTransport)
        self._http_transport = http_transport

    @property
    def configured(self) -> bool:
        return bool(self.auth_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport)

    async def _send_flow(self, phone: str, template_id: str, variables: dict[str, str]) -> str:
        payload = {
            "template_id": template_id,
            "short_url": "0",
            "realTimeResponse": "1",
            "recipients": [{"mobiles": f"{self.country}{phone}", **variables}],
        }
        headers = {"authkey": self.auth_key, "Content-Type": "application/json"}
        async with self._client() as client:
            response = await client.post(self.flow_url, headers=headers, json=payload)

        data: Any = {}
        try:
            data = response.json()
        except ValueError:
            pass
        if response.is_success and isinstance(data, dict) and data.get("type") == "success":
            return str(data.get("request_id") or data.get("message") or "")

        detail = _error_detail(response) or f"HTTP {response.status_code}"
        raise ExternalServiceError(f"MSG91 flow API error: {detail}", service=SERVICE_NAME)

    async def _send_direct(self, phone: str, body: str) -> str:
        params = {
            "authkey": self.auth_key,
            "mobiles": f"{self.country}{phone}",
            "message": body,
            "sender": self.sender_id,
            "route": self.route,
            "response": "json",
        }
        async with self._client() as client:
            response = await client.get(self.send_url, params=params)

        data: Any = {}
        try:
            data = response.json()
        except ValueError:
            pass
        if response.is_success and isinstance(data, dict) and (
            data.get("message") == DIRECT_SUCCESS_MESSAGE
            or data.get("type") == "success"
            or data.get("message_id")
        ):
            return str(data.get("message_id") or data.get("request_id") or data.get("message") or "")

        detail = _error_detail(response) or f"HTTP {response.status_code}"
        raise ExternalServiceError(f"MSG91 send error: {detail}", service=SERVICE_NAME)

    async def send(
        self,
        phone: str,
        body: str,
        *,
        template: str | None = None,
        variables: dict[str, str] | None = None,
    ) -> str:
        """
        Send one SMS to a 10-digit national number and return the gateway id.

        Raises:
            ExternalServiceError: unconfigured, gateway rejection or transport fault
        """
        if not self.configured:
            raise ExternalServiceError("SMS service not configured", service=SERVICE_NAME)

        template_id = self.template_ids.get(template) if template else None
        try:
            if template_id:
                message_id = await self._send_flow(phone, template_id, variables or {})
            else:
                message_id = await self._send_direct(phone, body)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError("SMS gateway timeout", service=SERVICE_NAME) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"SMS gateway connection error: {exc.__class__.__name__}", service=SERVICE_NAME
            ) from exc

        logger.info("SMS sent phone_last4=%s message_id=%s", extract_phone_last4(phone), message_id)
        return message_id
