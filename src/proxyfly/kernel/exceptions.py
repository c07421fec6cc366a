"""Unified exception hierarchy for proxyfly.

All framework exceptions inherit from ProxyflyException so callers can catch
framework failures in one place. Exceptions raised by proxied targets are
never converted into these types: they reach the caller unchanged.

Categories:
- InterceptionException: failures of the interception machinery itself
- InvocationError: wrapper produced by the invoker around a failed real call
- InterceptorConfigurationError: conflicting builder or option settings
- ProxyCreationError: an interface that cannot be proxied
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Base Exception
# =============================================================================


class ProxyflyException(Exception):
    """Base exception for all proxyfly errors.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "PROXY_001").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Interception Exceptions
# =============================================================================


class InterceptionException(ProxyflyException):
    """Failures raised by the interception machinery."""


class InvocationError(InterceptionException):
    """A real call failed while being dispatched by the invoker.

    Only the invoker creates these. The original exception is kept in
    ``original`` and ``__cause__``; :func:`proxyfly.intercept.invocation.normalize_exception`
    unwraps exactly one level so hooks and callers see the original.
    """

    def __init__(self, member: Any, original: BaseException) -> None:
        super().__init__(
            f"Invocation of {member} failed: {original!r}",
            code="INVOCATION_FAILED",
            context={"member": str(member)},
        )
        self.original = original


class InterceptorConfigurationError(InterceptionException):
    """Builder or option settings conflict with each other."""


class ProxyCreationError(InterceptionException):
    """The requested interface cannot be turned into a proxy."""
