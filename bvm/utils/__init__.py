"""Common utilities."""

from .async_http import AsyncHTTPClient
from .logger import setup_logging
from .progress import LoggingProgress, NullProgress, ProgressReporter, SpinnerProgress
from .time_format import time_format

__all__ = [
    "AsyncHTTPClient",
    "setup_logging",
    "ProgressReporter",
    "NullProgress",
    "LoggingProgress",
    "SpinnerProgress",
    "time_format",
]
