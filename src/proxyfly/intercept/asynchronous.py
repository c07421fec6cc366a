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
"""Interception of calls that return a single deferred value."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from proxyfly.intercept.descriptor import CallContext, MemberKind
from proxyfly.intercept.invocation import invoke, normalize_exception
from proxyfly.intercept.shapes import ShapeClassification, ShapeFamily
from proxyfly.intercept.units import InterceptorUnit, S, resolve
from proxyfly.kernel.exceptions import InvocationError


@dataclass(frozen=True)
class AsyncInterceptor(InterceptorUnit[S]):
    """Intercepts ``async def`` members and members returning awaitables.

    Each hook may be a plain function or return an awaitable, which is
    awaited in place. After the real awaitable resolves, exactly one of
    ``on_success(state, call, result)`` or ``on_error(state, call, error)``
    runs in the awaiting task. Cancellation reaches ``on_error`` as
    :class:`asyncio.CancelledError` and is re-raised.

    When the hooks start follows the member, so that the proxy behaves like
    the target:

    * ``async def`` members do nothing until awaited; ``before`` and the
      real call run on the first ``await``.
    * Plain members returning an awaitable call the target immediately.
      ``before`` runs first; a failure raised by the target before it
      returns its awaitable is reported and raised from the call itself.
      If ``before`` is asynchronous, the call waits for the first
      ``await`` instead.

    Members declared to return ``asyncio.Future``/``asyncio.Task`` get a
    task scheduled on the running loop instead of a bare coroutine.
    """

    family: ClassVar[ShapeFamily] = ShapeFamily.ASYNC

    on_success: Callable[[Any, CallContext, Any], Any] | None = None

    def intercept(self, call: CallContext, classification: ShapeClassification) -> Any:
        if call.method.kind is MemberKind.COROUTINE:
            coro = self._deferred(call)
        else:
            coro = self._started(call)
        if classification.eager:
            return asyncio.ensure_future(coro)
        return coro

    def _started(self, call: CallContext) -> Awaitable[Any]:
        state = self._start(call)
        if inspect.isawaitable(state):
            return self._after_before(state, call)

        try:
            with self._scope(state, call):
                awaitable = invoke(call)
        except InvocationError as wrapped:
            error = normalize_exception(wrapped)
        else:
            return self._complete(state, call, awaitable)

        pending = self._fail(state, call, error)
        if inspect.isawaitable(pending):
            return self._raise_after(pending, error)
        raise error

    async def _deferred(self, call: CallContext) -> Any:
        state = await resolve(self._start(call))
        return await self._call(state, call)

    async def _after_before(self, pending_state: Awaitable[Any], call: CallContext) -> Any:
        state = await pending_state
        return await self._call(state, call)

    async def _call(self, state: Any, call: CallContext) -> Any:
        try:
            with self._scope(state, call):
                awaitable = invoke(call)
        except InvocationError as wrapped:
            error = normalize_exception(wrapped)
        else:
            return await self._complete(state, call, awaitable)

        await resolve(self._fail(state, call, error))
        raise error

    async def _complete(self, state: Any, call: CallContext, awaitable: Any) -> Any:
        try:
            with self._scope(state, call):
                result = await awaitable
        except (Exception, asyncio.CancelledError) as exc:
            error = exc
        else:
            if self.on_success is not None:
                await resolve(self.on_success(state, call, result))
            return result

        await resolve(self._fail(state, call, error))
        raise error

    @staticmethod
    async def _raise_after(pending: Awaitable[Any], error: BaseException) -> Any:
        await pending
        raise error
