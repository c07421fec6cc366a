# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Interceptor units: the per-shape-family policy objects of a chain."""

from __future__ import annotations

import abc
import contextlib
import dataclasses
import inspect
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from proxyfly.intercept.descriptor import CallContext, MethodDescriptor
from proxyfly.intercept.shapes import ShapeClassification, ShapeFamily

S = TypeVar("S")

Admit = Callable[[Any, MethodDescriptor, tuple], bool]
Before = Callable[[CallContext], Any]
OnError = Callable[[Any, CallContext, BaseException], Any]
Scope = Callable[[Any, CallContext], AbstractContextManager[Any]]


@dataclass(frozen=True)
class InterceptorUnit(abc.ABC, Generic[S]):
    """A single interception policy for one shape family.

    Every hook is optional; a missing hook does nothing. The state returned
    by ``before`` is opaque to the framework and is handed back to every
    later hook of the same call.

    Attributes:
        before: ``before(call) -> state``, runs ahead of the real call.
        on_error: ``on_error(state, call, error)``, runs once when the call
            fails. The original error is re-raised afterwards unless the
            hook raises its own.
        admit: ``admit(target, method, args) -> bool``. Evaluated on the
            first call of each member and memoized by the chain, so it must
            only depend on the member, never on argument values.
        scope: ``scope(state, call) -> context manager`` entered around
            every stretch of work done by the target: the real call itself,
            awaiting its result, and every pull of a stream element. It is
            entered and exited in the same task, so it may set context
            variables such as the current span.
    """

    family: ClassVar[ShapeFamily]

    before: Before | None = None
    on_error: OnError | None = None
    admit: Admit | None = None
    scope: Scope | None = None

    @classmethod
    def of(cls, hooks: Any) -> Any:
        """Build a unit from any object exposing hook methods by name.

        Attributes that are missing or not callable are left unset, so one
        hooks object can feed units of every family.
        """
        found = {}
        for field in dataclasses.fields(cls):
            hook = getattr(hooks, field.name, None)
            if callable(hook):
                found[field.name] = hook
        return cls(**found)

    def admits(self, call: CallContext) -> bool:
        if self.admit is None:
            return True
        return bool(self.admit(call.target, call.method, call.args))

    @abc.abstractmethod
    def intercept(self, call: CallContext, classification: ShapeClassification) -> Any:
        """Run the full lifecycle of *call* and return what the caller receives."""

    def _start(self, call: CallContext) -> Any:
        if self.before is None:
            return None
        return self.before(call)

    def _scope(self, state: Any, call: CallContext) -> AbstractContextManager[Any]:
        if self.scope is None:
            return contextlib.nullcontext()
        return self.scope(state, call)

    def _fail(self, state: Any, call: CallContext, error: BaseException) -> Any:
        if self.on_error is None:
            return None
        return self.on_error(state, call, error)


async def resolve(value: Any) -> Any:
    """Await *value* if it is awaitable; hooks may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value
