"""
Unit tests for log formatting.
"""

import json
import logging
from unittest.mock import AsyncMock

import pytest
import structlog

from lambda_queue.invoker.client import LambdaInvoker
from lambda_queue.observability import logging as log_setup
from lambda_queue.types.job import Job, RedisConnection
from lambda_queue.worker.pool import WorkerPool


@pytest.fixture
def json_logging(monkeypatch, capsys, test_settings):
    """Install the JSON formatter, restoring the root logger afterwards."""
    settings = test_settings.model_copy(update={"log_format": "json", "log_level": "INFO"})
    monkeypatch.setattr(log_setup, "get_settings", lambda: settings)

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    log_setup.setup_logging()
    yield

    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def rendered_lines(capsys) -> list[dict]:
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


class TestJsonLogging:
    def test_extra_fields_are_rendered(self, json_logging, capsys):
        logging.getLogger("lambda_queue.test").info("hello", extra={"queue": "emails"})

        (line,) = rendered_lines(capsys)
        assert line["event"] == "hello"
        assert line["queue"] == "emails"
        assert line["level"] == "info"

    def test_level_override(self, json_logging, capsys):
        log_setup.setup_logging("DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.asyncio
    async def test_dispatch_log_keeps_message_and_event(self, json_logging, capsys, metrics):
        invoker = AsyncMock(spec=LambdaInvoker)
        invoker.invoke.return_value = {"ok": True}
        pool = WorkerPool(invoker, RedisConnection("localhost", 6379), metrics=metrics)
        job = Job(id="1", queue_name="testQueue", data={"lambdaArn": "fn", "event": {"test": "test"}})

        await pool.handle_job(job)

        lines = rendered_lines(capsys)
        sending = [line for line in lines if line["event"] == "Sending job to ARN: fn"]
        assert len(sending) == 1
        assert sending[0]["lambda_event"] == {"test": "test"}
        assert sending[0]["job_id"] == "1"
        assert any(line["event"] == "Completed job sent to fn" for line in lines)
