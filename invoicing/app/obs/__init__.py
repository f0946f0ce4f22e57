"""Observability: Sentry capture and slow query logging.

Structured logging lives in :mod:`.logging` and is configured by the app
factory; it is not re-exported here to keep import order simple.
"""

from .errors import capture_exception, init_sentry
from .queries import add_query_logger

__all__ = ["add_query_logger", "capture_exception", "init_sentry"]
