"""
Redis-backed job queue.

Each queue keeps its state under ``bq:<name>:``:

- ``id``         job id counter
- ``jobs``       hash of job id -> JSON record {data, options, status, error}
- ``waiting``    list of job ids ready to be fetched
- ``active``     list of job ids currently being processed
- ``succeeded``  set of job ids (only when jobs are kept on success)
- ``failed``     set of job ids that ran out of retries

Jobs move ``waiting -> active`` atomically with BLMOVE, so a job is never
lost between fetch and acknowledgement: if the worker dies, the id stays in
``active`` and is moved back to ``waiting`` the next time a worker starts.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from lambda_queue.constants import (
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    FETCH_BLOCK_TIMEOUT_SECONDS,
    FETCH_ERROR_BACKOFF_SECONDS,
    QUEUE_KEY_PREFIX,
    JobStatus,
)
from lambda_queue.types.job import Job, QueueDescriptor, RedisConnection

logger = logging.getLogger(__name__)

# Type alias for job handler functions; raising rejects the job
JobHandler = Callable[[Job], Awaitable[Any]]


class RedisQueue:
    """
    A named work queue stored in Redis.

    Producers call create_job(); a worker calls process() once with a
    handler. The handler's outcome decides what happens to the job:
    returning acknowledges it, raising records a failure (or requeues it
    while the job still has retries left).
    """

    def __init__(
        self,
        name: str,
        connection: RedisConnection,
        *,
        is_worker: bool = True,
        remove_on_success: bool = True,
        recover_stalled: bool = True,
        redis: Any = None,
    ):
        """
        Initialize the queue.

        Args:
            name: Queue name.
            connection: Redis host and port.
            is_worker: Whether this instance may process jobs.
            remove_on_success: Delete jobs once their handler resolves.
            recover_stalled: Requeue jobs left active by a previous worker
                when processing starts.
            redis: Pre-built redis.asyncio client.
        """
        self.name = name
        self.connection = connection
        self.is_worker = is_worker
        self.remove_on_success = remove_on_success
        self.recover_stalled = recover_stalled

        self._redis = redis or aioredis.from_url(connection.url, decode_responses=True)
        self._fetch_task: asyncio.Task | None = None
        self._active_tasks: set[asyncio.Task] = set()
        self._semaphore: asyncio.Semaphore | None = None
        self._closing = False
        self._closed = False

    @classmethod
    def from_descriptor(cls, descriptor: QueueDescriptor, **kwargs: Any) -> "RedisQueue":
        return cls(descriptor.name, descriptor.connection, **kwargs)

    def _key(self, suffix: str) -> str:
        return f"{QUEUE_KEY_PREFIX}:{self.name}:{suffix}"

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def create_job(self, data: Any, retries: int = 0) -> Job:
        """
        Save a new job and make it available to workers.

        Args:
            data: JSON-serializable job payload.
            retries: How many times a failed job is put back on the queue.

        Returns:
            The created job.
        """
        job_id = str(await self._redis.incr(self._key("id")))
        record = {
            "data": data,
            "options": {"retries": retries},
            "status": JobStatus.CREATED.value,
        }

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._key("jobs"), job_id, json.dumps(record))
            pipe.rpush(self._key("waiting"), job_id)
            await pipe.execute()

        return self._job_from_record(job_id, record)

    async def get_job(self, job_id: str) -> Job | None:
        """Load a job, or None if it does not exist (or was removed)."""
        raw = await self._redis.hget(self._key("jobs"), job_id)
        if raw is None:
            return None
        return self._job_from_record(job_id, json.loads(raw))

    async def counts(self) -> dict[str, int]:
        """Number of jobs per state."""
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.llen(self._key("waiting"))
            pipe.llen(self._key("active"))
            pipe.scard(self._key("succeeded"))
            pipe.scard(self._key("failed"))
            waiting, active, succeeded, failed = await pipe.execute()

        return {
            "waiting": waiting,
            "active": active,
            "succeeded": succeeded,
            "failed": failed,
        }

    def _job_from_record(self, job_id: str, record: dict[str, Any]) -> Job:
        options = record.get("options") or {}
        return Job(
            id=job_id,
            queue_name=self.name,
            data=record.get("data"),
            status=JobStatus(record.get("status", JobStatus.CREATED.value)),
            retries=int(options.get("retries", 0)),
            error=record.get("error"),
            options=options,
        )

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def process(self, handler: JobHandler, concurrency: int = 1) -> asyncio.Task:
        """
        Start fetching jobs and handing them to ``handler``.

        At most ``concurrency`` jobs from this queue are handled at once.

        Returns:
            The background fetch task.
        """
        if not self.is_worker:
            raise RuntimeError(f"Queue {self.name!r} is not a worker queue")
        if self._fetch_task is not None:
            raise RuntimeError(f"Queue {self.name!r} is already processing")
        if self._closing:
            raise RuntimeError(f"Queue {self.name!r} is closed")

        self._semaphore = asyncio.Semaphore(concurrency)
        self._fetch_task = asyncio.create_task(
            self._fetch_loop(handler),
            name=f"queue-fetch:{self.name}",
        )
        return self._fetch_task

    async def recover_stalled_jobs(self) -> int:
        """
        Move every job id left in ``active`` back to the head of ``waiting``.

        Returns:
            Number of jobs recovered.
        """
        recovered = 0
        while await self._redis.lmove(
            self._key("active"), self._key("waiting"), "RIGHT", "LEFT"
        ) is not None:
            recovered += 1

        if recovered:
            logger.info(
                f"Recovered {recovered} stalled jobs",
                extra={"queue": self.name},
            )
        return recovered

    async def _fetch_loop(self, handler: JobHandler) -> None:
        assert self._semaphore is not None

        if self.recover_stalled:
            try:
                await self.recover_stalled_jobs()
            except RedisError:
                logger.exception("Failed to recover stalled jobs", extra={"queue": self.name})

        while not self._closing:
            await self._semaphore.acquire()
            if self._closing:
                self._semaphore.release()
                break

            try:
                job_id = await self._redis.blmove(
                    self._key("waiting"),
                    self._key("active"),
                    FETCH_BLOCK_TIMEOUT_SECONDS,
                    "LEFT",
                    "RIGHT",
                )
            except RedisError as e:
                self._semaphore.release()
                logger.exception(
                    f"Error fetching job: {e}",
                    extra={"queue": self.name},
                )
                await asyncio.sleep(FETCH_ERROR_BACKOFF_SECONDS)
                continue
            except BaseException:
                self._semaphore.release()
                raise

            if job_id is None:
                self._semaphore.release()
                continue

            task = asyncio.create_task(
                self._run_job(job_id, handler),
                name=f"queue-job:{self.name}:{job_id}",
            )
            self._active_tasks.add(task)
            task.add_done_callback(self._active_tasks.discard)

    async def _run_job(self, job_id: str, handler: JobHandler) -> None:
        assert self._semaphore is not None

        try:
            try:
                job = await self.get_job(job_id)
            except (ValueError, TypeError, AttributeError):
                logger.exception(
                    f"Unreadable record for job {job_id}, marking it failed",
                    extra={"queue": self.name, "job_id": job_id},
                )
                await self._discard_unreadable(job_id)
                return

            if job is None:
                # Removed while waiting (e.g. destroyed)
                await self._redis.lrem(self._key("active"), 0, job_id)
                return

            job.status = JobStatus.ACTIVE

            try:
                await handler(job)
            except Exception as e:
                await self._mark_failed(job, e)
            else:
                await self._mark_succeeded(job)

        except RedisError:
            logger.exception(
                "Failed to update job state",
                extra={"queue": self.name, "job_id": job_id},
            )
        finally:
            self._semaphore.release()

    async def _mark_succeeded(self, job: Job) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self._key("active"), 0, job.id)
            if self.remove_on_success:
                pipe.hdel(self._key("jobs"), job.id)
            else:
                pipe.hset(self._key("jobs"), job.id, self._record(job, JobStatus.SUCCEEDED))
                pipe.sadd(self._key("succeeded"), job.id)
            await pipe.execute()

        job.status = JobStatus.SUCCEEDED

    async def _mark_failed(self, job: Job, error: Exception) -> None:
        job.error = str(error) or type(error).__name__

        if job.retries > 0:
            job.retries -= 1
            status = JobStatus.RETRYING
        else:
            status = JobStatus.FAILED

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self._key("active"), 0, job.id)
            pipe.hset(self._key("jobs"), job.id, self._record(job, status))
            if status == JobStatus.RETRYING:
                pipe.rpush(self._key("waiting"), job.id)
            else:
                pipe.sadd(self._key("failed"), job.id)
            await pipe.execute()

        job.status = status

    async def _discard_unreadable(self, job_id: str) -> None:
        # Never requeued: stall recovery would hand it back on every start
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self._key("active"), 0, job_id)
            pipe.sadd(self._key("failed"), job_id)
            await pipe.execute()

    def _record(self, job: Job, status: JobStatus) -> str:
        return json.dumps(
            {
                "data": job.data,
                "options": {**job.options, "retries": job.retries},
                "status": status.value,
                "error": job.error,
            }
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """
        Stop fetching, let in-flight jobs finish, then disconnect.

        Jobs still running after ``timeout`` seconds are cancelled. Their ids
        stay in ``active`` (never acknowledged), so they are recovered by the
        next worker to start.
        """
        if self._closed:
            return
        self._closing = True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        if self._fetch_task is not None:
            # The fetch loop notices the flag within one BLMOVE timeout
            _, pending = await asyncio.wait(
                {self._fetch_task},
                timeout=min(timeout, FETCH_BLOCK_TIMEOUT_SECONDS * 2),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(self._fetch_task, return_exceptions=True)

        if self._active_tasks:
            logger.info(
                f"Waiting for {len(self._active_tasks)} jobs to complete",
                extra={"queue": self.name},
            )
            remaining = max(0.0, deadline - loop.time())
            _, pending = await asyncio.wait(set(self._active_tasks), timeout=remaining)

            if pending:
                logger.warning(
                    f"Shutdown timeout reached, abandoning {len(pending)} jobs",
                    extra={"queue": self.name},
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        await self._redis.aclose()
        self._closed = True

    async def destroy(self) -> None:
        """Delete every key belonging to this queue. Irreversible."""
        await self._redis.delete(
            *(self._key(suffix) for suffix in ("id", "jobs", "waiting", "active", "succeeded", "failed"))
        )
