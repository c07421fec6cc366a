"""Proxyfly Logging: logging port, structlog adapter and the logging interceptor."""

from proxyfly.logging.interceptor import (
    LoggingInterceptor,
    LoggingInterceptorBuilder,
    LoggingInterceptorOptions,
    LoggingInterceptorState,
)
from proxyfly.logging.port import LoggingPort
from proxyfly.logging.structlog_adapter import StructlogAdapter

__all__ = [
    "LoggingInterceptor",
    "LoggingInterceptorBuilder",
    "LoggingInterceptorOptions",
    "LoggingInterceptorState",
    "LoggingPort",
    "StructlogAdapter",
]
