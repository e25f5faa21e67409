"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Iterable
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from lambda_queue.config import Settings
from lambda_queue.invoker.client import LambdaInvoker
from lambda_queue.observability.metrics import MetricsCollector
from lambda_queue.types.backend import InvokeResponse
from tests.helpers import TEST_REDIS_HOST, TEST_REDIS_PORT, FakeBackend, RecordingSleep


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on an isolated registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_invoker(metrics: MetricsCollector, recording_sleep: RecordingSleep):
    """Factory for invokers over a scripted backend."""

    def _make(
        outcomes: Iterable[InvokeResponse | Exception],
        max_retries: int = 2,
        **kwargs: Any,
    ) -> tuple[LambdaInvoker, FakeBackend]:
        backend = FakeBackend(outcomes)
        kwargs.setdefault("sleep", recording_sleep)
        invoker = LambdaInvoker(backend, max_retries, metrics=metrics, **kwargs)
        return invoker, backend

    return _make


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        aws_region="us-east-1",
        redis_host=TEST_REDIS_HOST,
        redis_port=TEST_REDIS_PORT,
        max_retries=2,
        queues=["testQueue"],
        log_level="DEBUG",
        log_format="console",
        shutdown_timeout_seconds=5,
    )
