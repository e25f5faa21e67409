"""
Unit tests for the boto3 Lambda backend.
"""

import io
import json
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from lambda_queue.constants import InvocationType
from lambda_queue.errors import BackendRequestError
from lambda_queue.invoker.backend import Boto3LambdaBackend, LambdaBackend
from lambda_queue.types.backend import InvokeRequest


def _streaming(payload: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(payload), len(payload))


class TestBoto3LambdaBackend:
    """Tests for Boto3LambdaBackend."""

    @pytest.fixture
    def client(self):
        return boto3.client(
            "lambda",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )

    @pytest.fixture
    def request_response(self) -> InvokeRequest:
        return InvokeRequest(
            function_name="arn:aws:lambda:us-east-1:123456789012:function:test",
            invocation_type=InvocationType.REQUEST_RESPONSE,
            payload=json.dumps({"test": "test"}),
        )

    def test_satisfies_protocol(self, client):
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        assert isinstance(backend, LambdaBackend)

    def test_builds_client_from_settings(self):
        backend = Boto3LambdaBackend(
            "eu-west-1",
            "2015-03-31",
            endpoint_url="http://localhost:4566",
        )

        assert backend.client.meta.region_name == "eu-west-1"
        assert backend.client.meta.endpoint_url == "http://localhost:4566"

    @pytest.mark.asyncio
    async def test_invoke_returns_payload(self, client, request_response):
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        with Stubber(client) as stubber:
            stubber.add_response(
                "invoke",
                {"StatusCode": 200, "Payload": _streaming(b'{"ok": true}')},
                {
                    "FunctionName": request_response.function_name,
                    "InvocationType": "RequestResponse",
                    "LogType": "None",
                    "Payload": b'{"test": "test"}',
                },
            )

            response = await backend.invoke(request_response)

            stubber.assert_no_pending_responses()

        assert response.status_code == 200
        assert response.payload == b'{"ok": true}'
        assert response.function_error is None
        assert not response.is_rate_limited

    @pytest.mark.asyncio
    async def test_invoke_reports_function_error(self, client, request_response):
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        with Stubber(client) as stubber:
            stubber.add_response(
                "invoke",
                {
                    "StatusCode": 200,
                    "FunctionError": "Unhandled",
                    "Payload": _streaming(b'{"errorMessage": "boom"}'),
                },
            )

            response = await backend.invoke(request_response)

        assert response.function_error == "Unhandled"
        assert response.payload == b'{"errorMessage": "boom"}'

    @pytest.mark.asyncio
    async def test_throttling_becomes_rate_limited_response(self, client, request_response):
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        with Stubber(client) as stubber:
            stubber.add_client_error(
                "invoke",
                service_error_code="TooManyRequestsException",
                service_message="Rate exceeded",
                http_status_code=429,
            )

            response = await backend.invoke(request_response)

        assert response.is_rate_limited
        assert response.payload is None

    @pytest.mark.asyncio
    async def test_client_error_becomes_backend_request_error(self, client, request_response):
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        with Stubber(client) as stubber:
            stubber.add_client_error(
                "invoke",
                service_error_code="ResourceNotFoundException",
                service_message="Function not found",
                http_status_code=404,
            )

            with pytest.raises(BackendRequestError) as exc_info:
                await backend.invoke(request_response)

        assert exc_info.value.code == "ResourceNotFoundException"
        assert exc_info.value.message == "Function not found"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_connection_error_becomes_backend_request_error(self, request_response):
        client = MagicMock()
        client.invoke.side_effect = EndpointConnectionError(endpoint_url="http://lambda")
        backend = Boto3LambdaBackend("us-east-1", "2015-03-31", client=client)

        with pytest.raises(BackendRequestError) as exc_info:
            await backend.invoke(request_response)

        assert exc_info.value.code == "EndpointConnectionError"
        assert exc_info.value.status_code is None
