"""
Lambda invocation: retrying client and backend adapters.
"""

from lambda_queue.invoker.backend import Boto3LambdaBackend, LambdaBackend
from lambda_queue.invoker.client import LambdaInvoker, compute_backoff_ms

__all__ = [
    "LambdaBackend",
    "Boto3LambdaBackend",
    "LambdaInvoker",
    "compute_backoff_ms",
]
