"""
Worker pool binding queue consumption to Lambda invocations.

One queue subscription per configured queue name. Every delivered job is
dispatched once to the invocation client; the handler's outcome tells the
queue whether to acknowledge (remove) the job or record a failure.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from lambda_queue.broker.queue import RedisQueue
from lambda_queue.config import Settings
from lambda_queue.constants import (
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    PAYLOAD_EVENT_KEY,
    PAYLOAD_FUNCTION_KEY,
    PAYLOAD_OPTIONS_KEY,
    SPAN_HANDLE_JOB,
    InvocationType,
)
from lambda_queue.errors import ConfigurationError, DispatchError
from lambda_queue.invoker.backend import Boto3LambdaBackend
from lambda_queue.invoker.client import LambdaInvoker
from lambda_queue.observability.logging import bind_context, clear_context
from lambda_queue.observability.metrics import MetricsCollector, get_metrics
from lambda_queue.observability.tracing import get_tracer
from lambda_queue.types.job import Job, QueueDescriptor, RedisConnection

QueueFactory = Callable[[QueueDescriptor], RedisQueue]


class WorkerPool:
    """
    Consumes jobs from named Redis queues and dispatches them to Lambda.

    Job lifecycle, from the pool's point of view:
    delivered -> dispatching -> succeeded | failed

    A failed job is handed back to the queue, which applies its own
    redelivery policy. A redelivered job is just another delivery here.
    """

    def __init__(
        self,
        invoker: LambdaInvoker,
        connection: RedisConnection,
        *,
        concurrency: int = 1,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        recover_stalled: bool = True,
        queue_factory: QueueFactory | None = None,
        logger: logging.Logger | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the worker pool.

        Args:
            invoker: Shared invocation client.
            connection: Redis connection used for every queue.
            concurrency: Jobs handled at once, per queue.
            shutdown_timeout: Seconds stop() waits for in-flight jobs.
            recover_stalled: Requeue jobs a previous worker left active.
            queue_factory: Builds a queue from its descriptor.
            logger: Logger for job outcomes.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        self.invoker = invoker
        self.connection = connection
        self.concurrency = concurrency
        self.shutdown_timeout = shutdown_timeout
        self.recover_stalled = recover_stalled
        self.queues: list[RedisQueue] = []

        self._queue_factory = queue_factory or self._create_queue
        self._logger = logger or logging.getLogger(__name__)
        self._metrics = metrics or get_metrics()
        self._stopped = asyncio.Event()
        self._stopping = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        invoker: LambdaInvoker | None = None,
        **kwargs: Any,
    ) -> "WorkerPool":
        """Build a pool (and, unless given, its invoker) from settings."""
        if not settings.aws_region:
            raise ConfigurationError("'AWS_REGION' must be set")

        if invoker is None:
            backend = Boto3LambdaBackend(
                region=settings.aws_region,
                api_version=settings.aws_lambda_version,
                endpoint_url=settings.lambda_endpoint_url,
            )
            invoker = LambdaInvoker(backend, settings.max_retries)

        return cls(
            invoker,
            RedisConnection(host=settings.redis_host, port=settings.redis_port),
            concurrency=settings.worker_concurrency,
            shutdown_timeout=settings.shutdown_timeout_seconds,
            recover_stalled=settings.recover_stalled_jobs,
            **kwargs,
        )

    def _create_queue(self, descriptor: QueueDescriptor) -> RedisQueue:
        return RedisQueue.from_descriptor(
            descriptor,
            is_worker=True,
            remove_on_success=True,
            recover_stalled=self.recover_stalled,
        )

    async def start(self, queue_names: Iterable[str]) -> "WorkerPool":
        """
        Subscribe to every queue and start handling jobs.

        Args:
            queue_names: Names of the queues to consume. Duplicates are
                subscribed once.

        Returns:
            The pool itself, as a handle for stop() and purge().

        Raises:
            ConfigurationError: If no queue name is given.
        """
        names = list(dict.fromkeys(queue_names))
        if not names:
            raise ConfigurationError("At least one queue name must be specified")
        if self.queues:
            raise RuntimeError("Worker pool is already started")

        for name in names:
            self._logger.info(f'Creating queue "{name}"', extra={"queue": name})
            self.queues.append(self._queue_factory(QueueDescriptor(name, self.connection)))

        for queue in self.queues:
            self._logger.info(f'Processing "{queue.name}"', extra={"queue": queue.name})
            queue.process(self.handle_job, concurrency=self.concurrency)

        return self

    async def handle_job(self, job: Job) -> Any:
        """
        Dispatch a single job to its Lambda function.

        Returns normally when the job is handled, which acknowledges it.
        Jobs without a function reference are dropped (logged and
        acknowledged) so malformed jobs cannot loop forever.

        Raises:
            DispatchError: Any classified invocation failure, re-raised so
                the queue records it.
        """
        start_time = time.monotonic()
        self._metrics.record_job_pulled(job.queue_name)
        self._logger.info(
            f"Pulled job {job.id}",
            extra={"queue": job.queue_name, "job_id": job.id},
        )

        data = job.data if isinstance(job.data, Mapping) else {}
        function_ref = data.get(PAYLOAD_FUNCTION_KEY)

        if not function_ref:
            self._logger.error(
                "Lambda ARN is a required property for each job",
                extra={"queue": job.queue_name, "job_id": job.id},
            )
            self._record_outcome(job, "dropped", start_time)
            return None

        event = data.get(PAYLOAD_EVENT_KEY, {})
        options = data.get(PAYLOAD_OPTIONS_KEY, {})

        bind_context(queue=job.queue_name, job_id=job.id, function_ref=function_ref)
        try:
            with get_tracer().start_as_current_span(SPAN_HANDLE_JOB) as span:
                span.set_attribute("queue", job.queue_name)
                span.set_attribute("job_id", job.id)
                span.set_attribute("function_ref", function_ref)

                self._logger.info(
                    f"Sending job to ARN: {function_ref}",
                    extra={"lambda_event": event},
                )

                try:
                    result = await self.invoker.invoke(function_ref, event, options)
                except DispatchError as e:
                    self._logger.error(
                        f"Encountered an error sending job to {function_ref}",
                        extra=e.to_dict(),
                    )
                    self._record_outcome(job, "failed", start_time)
                    raise
                except Exception as e:
                    self._logger.exception(
                        f"Encountered an error sending job to {function_ref}",
                        extra={"error": str(e)},
                    )
                    self._record_outcome(job, "failed", start_time)
                    raise

            if self._is_synchronous(options):
                self._logger.info(
                    f"Completed job sent to {function_ref}",
                    extra={"result": result},
                )
            else:
                self._logger.info(f"Sent job to {function_ref}")

            self._record_outcome(job, "succeeded", start_time)
            return result
        finally:
            clear_context()

    @staticmethod
    def _is_synchronous(options: Any) -> bool:
        if not isinstance(options, Mapping):
            return True
        invocation_type = options.get("invocationType")
        return not invocation_type or invocation_type == InvocationType.REQUEST_RESPONSE

    def _record_outcome(self, job: Job, status: str, start_time: float) -> None:
        self._metrics.record_job_completed(
            queue=job.queue_name,
            status=status,
            duration_seconds=time.monotonic() - start_time,
        )

    async def stop(self, timeout: float | None = None) -> None:
        """
        Close every queue, letting in-flight jobs finish.

        Waits at most ``timeout`` seconds (default: the configured shutdown
        timeout) for running jobs; stragglers are cancelled and left
        unacknowledged for redelivery. Safe to call more than once.
        """
        if self._stopping:
            await self._stopped.wait()
            return
        self._stopping = True

        timeout = self.shutdown_timeout if timeout is None else timeout
        self._logger.info("Closing queues", extra={"timeout": timeout})

        results = await asyncio.gather(
            *(queue.close(timeout) for queue in self.queues),
            return_exceptions=True,
        )
        for queue, result in zip(self.queues, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    f'Error closing queue "{queue.name}"',
                    exc_info=result,
                    extra={"queue": queue.name},
                )

        self._stopped.set()
        self._logger.info("Worker pool stopped")

    async def purge(self) -> None:
        """
        Delete every queue's backlog and definition from Redis.

        Irreversible; meant for tests and maintenance. Must be called while
        the pool's queues are still open (before stop()).
        """
        self._logger.warning("Clearing queues", extra={"queues": [q.name for q in self.queues]})
        await asyncio.gather(*(queue.destroy() for queue in self.queues))

    async def run_until_stopped(self) -> None:
        """Block until stop() has completed."""
        await self._stopped.wait()
