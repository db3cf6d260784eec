"""Notification dispatch with validation and retry/backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from app.schemas import is_valid_email
from services.errors import TransientTransportError, ValidationError
from services.transport import EmailMessage, EmailTransport, ResendTransport
from settings import get_settings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a send and how long to wait in between."""

    max_attempts: int = 3
    delays: Tuple[float, ...] = (0.5, 1.5, 3.0)

    def delay_for(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failure (1-based)."""

        if not self.delays:
            return 0.0
        index = min(attempt - 1, len(self.delays) - 1)
        return self.delays[index]


@dataclass(frozen=True)
class DispatchReceipt:
    delivery_id: str
    attempts: int


class NotificationDispatcher:
    """Validates a notification and hands it to the transport, retrying transient failures."""

    def __init__(
        self,
        transport: EmailTransport,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def dispatch(
        self,
        sender: str,
        recipients: Sequence[str],
        subject: str,
        body: str,
    ) -> DispatchReceipt:
        """Send one message.

        Raises ``ValidationError`` before any network call when the addresses
        are malformed, ``PermanentTransportError`` on the first permanent
        failure, and the last ``TransientTransportError`` once the retry
        budget is spent. Cancelling the calling task interrupts a pending
        backoff delay.
        """

        message = self._build_message(sender, recipients, subject, body)
        attempt = 0
        while True:
            attempt += 1
            try:
                delivery_id = await self.transport.send(message)
            except TransientTransportError as exc:
                if attempt >= self.policy.max_attempts:
                    logger.error(
                        "Dispatch failed after %d attempts",
                        attempt,
                        extra={"attempt": attempt, "error": str(exc), "status_code": exc.status_code},
                    )
                    raise
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "Transient dispatch failure; retrying",
                    extra={
                        "attempt": attempt,
                        "delay": delay,
                        "error": str(exc),
                        "status_code": exc.status_code,
                    },
                )
                await self._sleep(delay)
                continue

            logger.info(
                "Notification dispatched",
                extra={
                    "attempt": attempt,
                    "delivery_id": delivery_id,
                    "recipient_count": len(message.recipients),
                },
            )
            return DispatchReceipt(delivery_id=delivery_id, attempts=attempt)

    @staticmethod
    def _build_message(
        sender: str, recipients: Sequence[str], subject: str, body: str
    ) -> EmailMessage:
        sender = (sender or "").strip()
        if not is_valid_email(sender):
            raise ValidationError(f"Invalid sender email: {sender!r}")
        cleaned = [recipient.strip() for recipient in recipients if recipient and recipient.strip()]
        if not cleaned:
            raise ValidationError("At least one recipient is required")
        bad = next((recipient for recipient in cleaned if not is_valid_email(recipient)), None)
        if bad is not None:
            raise ValidationError(f"Invalid recipient email: {bad!r}")
        return EmailMessage(
            sender=sender,
            recipients=cleaned,
            subject=subject,
            body=body,
            reply_to=sender,
        )


@lru_cache
def build_default_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    transport = ResendTransport(
        api_url=settings.email_api_url,
        api_key=settings.email_api_key,
        from_address=settings.email_from_address,
        timeout=settings.email_timeout_seconds,
    )
    policy = RetryPolicy(max_attempts=settings.dispatch_max_attempts)
    return NotificationDispatcher(transport=transport, policy=policy)
