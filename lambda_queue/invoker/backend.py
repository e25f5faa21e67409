"""
Remote execution backends.

A backend performs exactly one invoke call and reports either an accepted
response (which may still be a rate-limit response) or a BackendRequestError.
Retry policy does not live here.
"""

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from lambda_queue.constants import RATE_LIMIT_STATUS_CODE, THROTTLING_ERROR_CODES
from lambda_queue.errors import BackendRequestError
from lambda_queue.types.backend import InvokeRequest, InvokeResponse

logger = logging.getLogger(__name__)


@runtime_checkable
class LambdaBackend(Protocol):
    """Protocol for the "invoke remote function" collaborator."""

    async def invoke(self, request: InvokeRequest) -> InvokeResponse:
        """
        Perform a single invoke call.

        Raises:
            BackendRequestError: If the service rejected the call.
        """
        ...


class Boto3LambdaBackend:
    """
    AWS Lambda backend built on a boto3 client.

    boto3 is blocking, so each call runs in a worker thread and the calling
    task is suspended meanwhile. botocore's own retries are disabled: the
    invocation client owns the retry policy for throttling.
    """

    def __init__(
        self,
        region: str,
        api_version: str,
        endpoint_url: str | None = None,
        client: Any = None,
    ):
        self.region = region
        self.api_version = api_version

        if client is None:
            client_kwargs: dict[str, Any] = {
                "service_name": "lambda",
                "region_name": region,
                "api_version": api_version,
                "config": Config(retries={"total_max_attempts": 1, "mode": "standard"}),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client(**client_kwargs)

        self.client = client

        logger.debug(
            "Lambda backend initialized",
            extra={"region": region, "api_version": api_version, "endpoint": endpoint_url},
        )

    async def invoke(self, request: InvokeRequest) -> InvokeResponse:
        return await asyncio.to_thread(self._invoke_sync, request)

    def _invoke_sync(self, request: InvokeRequest) -> InvokeResponse:
        try:
            response = self.client.invoke(
                FunctionName=request.function_name,
                InvocationType=request.invocation_type.value,
                LogType=request.log_type,
                Payload=request.payload.encode("utf-8"),
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(e))
            status_code = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

            if status_code == RATE_LIMIT_STATUS_CODE or code in THROTTLING_ERROR_CODES:
                return InvokeResponse(status_code=RATE_LIMIT_STATUS_CODE)

            raise BackendRequestError(code, message, status_code) from e
        except BotoCoreError as e:
            # Credentials, endpoint and connection failures
            raise BackendRequestError(type(e).__name__, str(e)) from e

        body = response.get("Payload")
        payload = body.read() if body is not None else None

        return InvokeResponse(
            status_code=response["StatusCode"],
            payload=payload,
            function_error=response.get("FunctionError"),
        )
