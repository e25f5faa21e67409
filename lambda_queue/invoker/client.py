"""
Lambda invocation client.

Wraps a single remote call with rate-limit-aware retries and classifies every
failure into the dispatch error taxonomy (see lambda_queue.errors).
"""

import asyncio
import json
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from lambda_queue.constants import BACKOFF_BASE_MS, SPAN_INVOKE_FUNCTION, InvocationType
from lambda_queue.errors import (
    BackendRequestError,
    DispatchError,
    PayloadParseError,
    RateLimitExceeded,
    RemoteFunctionError,
    TransportError,
)
from lambda_queue.invoker.backend import LambdaBackend
from lambda_queue.observability.metrics import MetricsCollector, get_metrics
from lambda_queue.observability.tracing import get_tracer
from lambda_queue.types.backend import InvokeRequest, InvokeResponse
from lambda_queue.types.job import InvocationOptions

SleepFunc = Callable[[float], Awaitable[Any]]


def compute_backoff_ms(
    attempt: int,
    base_ms: int = BACKOFF_BASE_MS,
    random_fn: Callable[[], float] = random.random,
) -> int:
    """
    Full-jitter exponential backoff.

    Returns a delay in milliseconds drawn from [0, base_ms * 2**attempt].
    """
    return math.ceil(random_fn() * base_ms * 2**attempt)


class LambdaInvoker:
    """
    Invokes Lambda functions by ARN.

    Rate-limit responses are retried up to ``max_retries`` times with
    full-jitter exponential backoff; the backoff suspends only the awaiting
    task. The client keeps no per-call state on the instance, so one
    instance is safe to share between concurrently running jobs.
    """

    def __init__(
        self,
        backend: LambdaBackend,
        max_retries: int,
        *,
        backoff_base_ms: int = BACKOFF_BASE_MS,
        sleep: SleepFunc = asyncio.sleep,
        random_fn: Callable[[], float] = random.random,
        logger: logging.Logger | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the invoker.

        Args:
            backend: Performs the actual invoke call.
            max_retries: Retries allowed after a rate-limit response.
            backoff_base_ms: Backoff cap for the first retry, doubled per retry.
            sleep: Async sleep primitive, in seconds.
            random_fn: Source of jitter in [0, 1).
            logger: Logger for dispatch events.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        self.backend = backend
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self._sleep = sleep
        self._random = random_fn
        self._logger = logger or logging.getLogger(__name__)
        self._metrics = metrics or get_metrics()

    async def invoke(
        self,
        function_ref: str,
        payload: Any,
        options: InvocationOptions | Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Invoke a Lambda function.

        Args:
            function_ref: Function name or ARN.
            payload: JSON-serializable event sent to the function.
            options: Invocation options, ``{"invocationType": ...}``.
                Defaults to a synchronous RequestResponse call.

        Returns:
            The parsed function result for synchronous calls, None otherwise.

        Raises:
            RemoteFunctionError: The function responded with an error payload.
            TransportError: The service rejected the call.
            RateLimitExceeded: Still rate limited after max_retries retries.
            PayloadParseError: A synchronous result is not valid JSON.
        """
        if not function_ref:
            raise ValueError("function_ref must be a non-empty string")

        if not isinstance(options, InvocationOptions):
            options = InvocationOptions.model_validate(options or {})

        request = InvokeRequest(
            function_name=function_ref,
            invocation_type=options.invocation_type,
            payload=json.dumps(payload),
        )

        start_time = time.monotonic()
        outcome = "error"

        with get_tracer().start_as_current_span(SPAN_INVOKE_FUNCTION) as span:
            span.set_attribute("function_ref", function_ref)
            span.set_attribute("invocation_type", request.invocation_type.value)

            try:
                result = await self._invoke_with_retry(request)
                outcome = "success"
                return result
            except DispatchError as e:
                outcome = e.kind.value
                raise
            finally:
                self._metrics.record_invocation(
                    invocation_type=request.invocation_type.value,
                    outcome=outcome,
                    duration_seconds=time.monotonic() - start_time,
                )

    async def _invoke_with_retry(self, request: InvokeRequest) -> Any:
        attempt = 0

        while True:
            try:
                response = await self.backend.invoke(request)
            except BackendRequestError as e:
                raise TransportError.from_backend_error(e) from e

            if not response.is_rate_limited:
                return self._read_result(request, response)

            if attempt >= self.max_retries:
                raise RateLimitExceeded(attempts=attempt + 1)

            delay_ms = compute_backoff_ms(attempt, self.backoff_base_ms, self._random)
            self._logger.debug(
                "Rate limited, backing off",
                extra={
                    "function_ref": request.function_name,
                    "attempt": attempt,
                    "delay_ms": delay_ms,
                },
            )
            self._metrics.record_rate_limit_retry()

            await self._sleep(delay_ms / 1000)
            attempt += 1

    def _read_result(self, request: InvokeRequest, response: InvokeResponse) -> Any:
        # Event and DryRun responses carry no result
        if request.invocation_type != InvocationType.REQUEST_RESPONSE:
            return None

        try:
            result = json.loads(response.payload)
        except (TypeError, ValueError) as e:
            raise PayloadParseError(response.payload) from e

        if isinstance(result, dict) and (
            result.get("errorType") is not None or result.get("errorMessage") is not None
        ):
            raise RemoteFunctionError(result)

        return result
