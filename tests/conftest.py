"""Shared fixtures for proxyfly tests."""

from __future__ import annotations

from typing import Any

import pytest
import structlog

from proxyfly.intercept import CallContext


class HookRecorder:
    """Hooks object recording every hook call, usable with any unit's ``of``."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.errors: list[BaseException] = []

    def before(self, call: CallContext) -> str:
        self.events.append(("before", call.method.name, call.args))
        return f"state:{call.method.name}"

    def on_success(self, state: Any, call: CallContext, result: Any) -> None:
        self.events.append(("success", state, result))

    def on_error(self, state: Any, call: CallContext, error: BaseException) -> None:
        self.errors.append(error)
        self.events.append(("error", state, type(error).__name__))

    def on_next(self, state: Any, call: CallContext, item: Any) -> None:
        self.events.append(("next", state, item))

    def on_complete(self, state: Any, call: CallContext) -> None:
        self.events.append(("complete", state))

    @property
    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]


@pytest.fixture
def recorder() -> HookRecorder:
    return HookRecorder()


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
