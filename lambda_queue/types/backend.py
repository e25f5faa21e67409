"""
Remote execution backend wire records.
"""

from dataclasses import dataclass

from lambda_queue.constants import InvocationType, RATE_LIMIT_STATUS_CODE


@dataclass(frozen=True)
class InvokeRequest:
    """A single Lambda invoke call."""

    function_name: str
    invocation_type: InvocationType
    payload: str
    log_type: str = "None"


@dataclass(frozen=True)
class InvokeResponse:
    """
    Result of a Lambda invoke call that was accepted by the service.

    ``payload`` is the raw response body; only synchronous invocations carry
    one. ``function_error`` is set by Lambda when the function raised.
    """

    status_code: int
    payload: bytes | str | None = None
    function_error: str | None = None

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == RATE_LIMIT_STATUS_CODE
