"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class InvocationType(StrEnum):
    """
    Lambda invocation types.

    - REQUEST_RESPONSE: synchronous, wait for and parse the function result
    - EVENT: asynchronous, fire-and-forget
    - DRY_RUN: validate parameters and permissions without executing
    """

    REQUEST_RESPONSE = "RequestResponse"
    EVENT = "Event"
    DRY_RUN = "DryRun"


class JobStatus(StrEnum):
    """
    Broker-side job states.

    State transitions:
    - CREATED -> ACTIVE (fetched by a worker)
    - ACTIVE -> SUCCEEDED (handler resolved; removed when remove-on-success)
    - ACTIVE -> RETRYING (handler failed, retries left) -> ACTIVE
    - ACTIVE -> FAILED (handler failed, no retries left)
    - ACTIVE -> CREATED (stalled job recovered on worker start)
    """

    CREATED = "created"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Discriminator for dispatch failures."""

    REMOTE_FUNCTION = "RemoteFunctionError"
    TRANSPORT = "TransportError"
    RATE_LIMIT_EXCEEDED = "RateLimitExceeded"
    PAYLOAD_PARSE = "PayloadParseError"


# Default values
DEFAULT_LAMBDA_API_VERSION = "2015-03-31"
DEFAULT_REDIS_HOST = "localhost"
DEFAULT_REDIS_PORT = 6379
DEFAULT_MAX_RETRIES = 2
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 30.0

# Full-jitter exponential backoff base, in milliseconds
BACKOFF_BASE_MS = 200
RATE_LIMIT_STATUS_CODE = 429
THROTTLING_ERROR_CODES = frozenset({"TooManyRequestsException", "ThrottlingException"})

# Redis broker
QUEUE_KEY_PREFIX = "bq"
FETCH_BLOCK_TIMEOUT_SECONDS = 1.0
FETCH_ERROR_BACKOFF_SECONDS = 1.0

# Job payload wire keys
PAYLOAD_FUNCTION_KEY = "lambdaArn"
PAYLOAD_EVENT_KEY = "event"
PAYLOAD_OPTIONS_KEY = "options"

# Metrics names
METRIC_INVOCATIONS = "lambda_invocations_total"
METRIC_INVOCATION_DURATION = "lambda_invocation_duration_seconds"
METRIC_RATE_LIMIT_RETRIES = "lambda_rate_limit_retries_total"
METRIC_JOBS_PULLED = "jobs_pulled_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"

# Trace span names
SPAN_HANDLE_JOB = "handle_job"
SPAN_INVOKE_FUNCTION = "invoke_function"
