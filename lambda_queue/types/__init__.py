"""
Type definitions for the queue worker.
Contains input/output type definitions, grouped by module.
"""

from lambda_queue.types.backend import (
    InvokeRequest,
    InvokeResponse,
)
from lambda_queue.types.job import (
    InvocationOptions,
    Job,
    QueueDescriptor,
    RedisConnection,
)

__all__ = [
    # Backend types
    "InvokeRequest",
    "InvokeResponse",
    # Job types
    "InvocationOptions",
    "Job",
    "QueueDescriptor",
    "RedisConnection",
]
