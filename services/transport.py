"""E-mail transport abstraction and the HTTP API implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from services.errors import PermanentTransportError, TransientTransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    recipients: List[str]
    subject: str
    body: str
    reply_to: Optional[str] = None


class EmailTransport(Protocol):
    """Anything that can deliver an ``EmailMessage`` and return a delivery id.

    Implementations raise ``TransientTransportError`` for failures worth
    retrying and ``PermanentTransportError`` for everything else.
    """

    async def send(self, message: EmailMessage) -> str:
        ...


class ResendTransport:
    """Delivers mail through a Resend-compatible JSON API."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        from_address: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url
        self._api_key = api_key
        self.from_address = from_address
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_payload(self, message: EmailMessage) -> Dict[str, Any]:
        # A verified sending address takes the ``from`` slot; the configured
        # sender then receives replies.
        if self.from_address:
            sender = self.from_address
            reply_to = message.reply_to or message.sender
        else:
            sender = message.sender
            reply_to = message.reply_to
        payload: Dict[str, Any] = {
            "from": sender,
            "to": list(message.recipients),
            "subject": message.subject,
            "text": message.body,
        }
        if reply_to:
            payload["reply_to"] = reply_to
        return payload

    async def send(self, message: EmailMessage) -> str:
        if not self._api_key:
            raise PermanentTransportError(
                "EMAIL_API_KEY is not configured", code="NO_API_KEY"
            )

        try:
            response = await self._client.post(
                self.api_url,
                json=self.build_payload(message),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.TransportError as exc:
            raise TransientTransportError(f"E-mail API unreachable: {exc}", code="NETWORK") from exc

        data = self._parse_body(response)
        if response.is_success:
            delivery_id = data.get("id")
            if not isinstance(delivery_id, str) or not delivery_id:
                raise PermanentTransportError(
                    "E-mail API response did not include a delivery id",
                    status_code=response.status_code,
                )
            return delivery_id

        detail = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
        code = data.get("name") or f"HTTP_{response.status_code}"
        status_code = response.status_code
        if status_code >= 500 or status_code == 429:
            raise TransientTransportError(str(detail), code=code, status_code=status_code)
        raise PermanentTransportError(str(detail), code=code, status_code=status_code)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
