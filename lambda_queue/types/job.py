"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from lambda_queue.constants import InvocationType, JobStatus


class InvocationOptions(BaseModel):
    """
    Per-job invocation options, as found under ``options`` in a job payload.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    invocation_type: InvocationType = Field(
        default=InvocationType.REQUEST_RESPONSE,
        alias="invocationType",
    )

    @property
    def is_synchronous(self) -> bool:
        """True when the caller waits for and parses the function result."""
        return self.invocation_type == InvocationType.REQUEST_RESPONSE


@dataclass(frozen=True)
class RedisConnection:
    """Broker connection details."""

    host: str
    port: int

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}"


@dataclass(frozen=True)
class QueueDescriptor:
    """
    A configured queue. Created once per queue name at startup.
    """

    name: str
    connection: RedisConnection


@dataclass
class Job:
    """
    A unit of work as delivered by the broker.

    ``data`` is the wire payload: ``lambdaArn``, ``event`` and ``options``.
    """

    id: str
    queue_name: str
    data: Any
    status: JobStatus = JobStatus.CREATED
    retries: int = 0
    error: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
