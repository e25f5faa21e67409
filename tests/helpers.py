"""
Test doubles shared across test modules.
"""

import json
import os
from collections.abc import Iterable
from typing import Any

from lambda_queue.types.backend import InvokeRequest, InvokeResponse

# Redis used by integration tests
TEST_REDIS_HOST = os.getenv("TEST_REDIS_HOST", "localhost")
TEST_REDIS_PORT = int(os.getenv("TEST_REDIS_PORT", "6379"))


class FakeBackend:
    """
    Scripted Lambda backend.

    Each call pops the next scripted outcome: an InvokeResponse is returned,
    an exception is raised. When the script runs out the last outcome repeats.
    """

    def __init__(self, outcomes: Iterable[InvokeResponse | Exception]):
        self.outcomes = list(outcomes)
        self.requests: list[InvokeRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def invoke(self, request: InvokeRequest) -> InvokeResponse:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    """Async sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def ok_response(payload: Any = None, status_code: int = 200) -> InvokeResponse:
    """Build a successful synchronous response carrying ``payload`` as JSON."""
    return InvokeResponse(status_code=status_code, payload=json.dumps(payload).encode())


def rate_limited() -> InvokeResponse:
    return InvokeResponse(status_code=429)
