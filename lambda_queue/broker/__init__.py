"""
Broker module.
Contains the Redis-backed job queue the worker pool consumes.
"""

from lambda_queue.broker.queue import JobHandler, RedisQueue

__all__ = [
    "JobHandler",
    "RedisQueue",
]
