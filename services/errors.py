"""Exception taxonomy for the alert pipeline.

Configuration gaps and cooldown throttling are normal outcomes, not errors,
and therefore have no exception type here.
"""

from __future__ import annotations

from typing import Optional


class AlertPipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(AlertPipelineError):
    """Malformed or missing input. Never retried."""


class StorageError(AlertPipelineError):
    """The persistence layer is unavailable or rejected an operation."""


class ResetIncompleteError(AlertPipelineError):
    """Administrative reset where only part of the state was cleared."""

    def __init__(self, message: str, *, history_cleared: bool, cooldown_reset: bool) -> None:
        super().__init__(message)
        self.history_cleared = history_cleared
        self.cooldown_reset = cooldown_reset


class DispatchError(AlertPipelineError):
    """A notification could not be delivered."""


class TransportError(DispatchError):
    """Failure reported by the e-mail transport."""

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class TransientTransportError(TransportError):
    """Network error or server-side failure; safe to retry."""


class PermanentTransportError(TransportError):
    """Rejected request (auth, malformed payload); retrying will not help."""
