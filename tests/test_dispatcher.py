"""Tests for validation and retry behaviour of the notification dispatcher."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from services.dispatcher import NotificationDispatcher, RetryPolicy
from services.errors import PermanentTransportError, TransientTransportError, ValidationError
from services.transport import EmailMessage


class ScriptedTransport:
    """Returns or raises the scripted outcomes in order, then succeeds."""

    def __init__(self, outcomes: Optional[list] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> str:
        self.sent.append(message)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return f"delivery-{len(self.sent)}"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _dispatch(dispatcher: NotificationDispatcher, **overrides):
    kwargs = dict(
        sender="ops@example.com",
        recipients=["a@example.com"],
        subject="subject",
        body="body",
    )
    kwargs.update(overrides)
    return asyncio.run(dispatcher.dispatch(**kwargs))


def test_first_attempt_success() -> None:
    transport = ScriptedTransport(["msg-1"])
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(transport, sleep=sleep)

    receipt = _dispatch(dispatcher)

    assert receipt.delivery_id == "msg-1"
    assert receipt.attempts == 1
    assert sleep.delays == []
    (message,) = transport.sent
    assert message.sender == "ops@example.com"
    assert message.reply_to == "ops@example.com"
    assert message.recipients == ["a@example.com"]


def test_transient_failures_are_retried_with_increasing_backoff() -> None:
    transport = ScriptedTransport(
        [TransientTransportError("503"), TransientTransportError("timeout"), "msg-3"]
    )
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(transport, sleep=sleep)

    receipt = _dispatch(dispatcher)

    assert receipt.delivery_id == "msg-3"
    assert receipt.attempts == 3
    assert sleep.delays == [0.5, 1.5]


def test_retry_budget_exhaustion_raises_last_error() -> None:
    transport = ScriptedTransport([TransientTransportError(f"fail {n}") for n in range(1, 5)])
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(transport, sleep=sleep)

    with pytest.raises(TransientTransportError, match="fail 3"):
        _dispatch(dispatcher)

    assert len(transport.sent) == 3
    assert sleep.delays == [0.5, 1.5]


def test_permanent_failure_is_not_retried() -> None:
    transport = ScriptedTransport([PermanentTransportError("unauthorized", status_code=401)])
    sleep = RecordingSleep()
    dispatcher = NotificationDispatcher(transport, sleep=sleep)

    with pytest.raises(PermanentTransportError):
        _dispatch(dispatcher)

    assert len(transport.sent) == 1
    assert sleep.delays == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"sender": "broken"},
        {"sender": ""},
        {"recipients": []},
        {"recipients": ["  "]},
        {"recipients": ["a@example.com", "no-at-sign"]},
    ],
)
def test_invalid_addresses_fail_before_any_send(overrides) -> None:
    transport = ScriptedTransport()
    dispatcher = NotificationDispatcher(transport, sleep=RecordingSleep())

    with pytest.raises(ValidationError):
        _dispatch(dispatcher, **overrides)

    assert transport.sent == []


def test_policy_reuses_last_delay_beyond_table() -> None:
    policy = RetryPolicy(max_attempts=5, delays=(0.5, 1.5, 3.0))

    assert [policy.delay_for(attempt) for attempt in range(1, 6)] == [0.5, 1.5, 3.0, 3.0, 3.0]
    assert RetryPolicy(delays=()).delay_for(1) == 0.0


def test_cancellation_stops_pending_retries() -> None:
    transport = ScriptedTransport([TransientTransportError("down")] * 3)
    dispatcher = NotificationDispatcher(
        transport, policy=RetryPolicy(max_attempts=3, delays=(30.0,))
    )

    async def scenario() -> None:
        task = asyncio.create_task(
            dispatcher.dispatch(
                sender="ops@example.com",
                recipients=["a@example.com"],
                subject="s",
                body="b",
            )
        )
        while not transport.sent:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert len(transport.sent) == 1
