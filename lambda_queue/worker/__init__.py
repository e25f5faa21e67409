"""
Worker module.
Contains the worker pool and the process entry point.
"""

from lambda_queue.worker.pool import WorkerPool

__all__ = ["WorkerPool"]
