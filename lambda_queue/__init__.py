"""
Lambda Queue Worker

A queue worker that pulls jobs from Redis-backed work queues and dispatches
each one to an AWS Lambda function, with rate-limit-aware retries and a typed
error taxonomy.
"""

__version__ = "1.0.0"
