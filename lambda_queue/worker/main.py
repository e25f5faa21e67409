"""
Worker process entry point.

Usage:
    lambda-queue-worker [--debug] QUEUE [QUEUE ...]

Queue names may also come from the QUEUES setting (comma-separated).
"""

import argparse
import asyncio
import logging
import signal
import sys

from lambda_queue.config import Settings, get_settings
from lambda_queue.errors import ConfigurationError
from lambda_queue.observability.logging import setup_logging
from lambda_queue.observability.metrics import setup_metrics
from lambda_queue.observability.tracing import setup_tracing
from lambda_queue.worker.pool import WorkerPool

logger = logging.getLogger(__name__)

# Settings that fall back to a default worth pointing out at startup
_DEFAULTED_SETTINGS = {
    "aws_lambda_version": "AWS_LAMBDA_VERSION",
    "redis_host": "REDIS_HOST",
    "redis_port": "REDIS_PORT",
    "max_retries": "MAX_RETRIES",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="lambda-queue-worker",
        description="Dispatch jobs from Redis queues to AWS Lambda functions.",
    )
    parser.add_argument("queues", nargs="*", help="Names of the queues to process")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def warn_defaults(settings: Settings) -> None:
    """Log a warning for every notable setting left at its default."""
    for field, env_name in _DEFAULTED_SETTINGS.items():
        if field not in settings.model_fields_set:
            logger.warning(
                f"No '{env_name}' setting specified, defaulting to {getattr(settings, field)}"
            )


async def run_async(argv: list[str] | None = None) -> None:
    """Run the worker pool until SIGTERM/SIGINT."""
    args = parse_args(argv)
    settings = get_settings()

    setup_logging("DEBUG" if args.debug else None)

    queue_names = args.queues or settings.queues
    if not queue_names:
        raise ConfigurationError("At least one queue name must be specified")

    warn_defaults(settings)

    if settings.metrics_enabled:
        setup_metrics(settings.prometheus_port)
    if settings.tracing_enabled:
        setup_tracing()

    pool = WorkerPool.from_settings(settings)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(pool.stop())
        )

    await pool.start(queue_names)
    await pool.run_until_stopped()


def run(argv: list[str] | None = None) -> int:
    """Run the worker."""
    try:
        asyncio.run(run_async(argv))
    except ConfigurationError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
