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
"""Interception of streaming calls: pulled sequences and pushed events."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass
from typing import Any, ClassVar

from proxyfly.intercept.descriptor import CallContext
from proxyfly.intercept.invocation import invoke, normalize_exception
from proxyfly.intercept.observable import Disposable, as_observer
from proxyfly.intercept.shapes import Shape, ShapeClassification, ShapeFamily
from proxyfly.intercept.units import InterceptorUnit, S
from proxyfly.kernel.exceptions import InvocationError

_EXHAUSTED = object()


@dataclass(frozen=True)
class StreamInterceptor(InterceptorUnit[S]):
    """Intercepts members returning iterators, async iterators or observables.

    ``before`` runs synchronously when the member is called, before any
    element exists. Then, per invocation:

    * ``on_next(state, call, item)`` for every element, in pull order for
      sequences and emission order for observables, always before the
      element reaches the consumer;
    * ``on_complete(state, call)`` once when the stream is exhausted, or
    * ``on_error(state, call, error)`` once when pulling or pushing fails.

    The two terminal hooks are exclusive and nothing follows them. A
    consumer that stops early (``break``, ``close()``, ``aclose()``) gets no
    terminal hook at all; the underlying iterator is closed.
    """

    family: ClassVar[ShapeFamily] = ShapeFamily.STREAM

    on_next: Callable[[Any, CallContext, Any], Any] | None = None
    on_complete: Callable[[Any, CallContext], Any] | None = None

    def intercept(self, call: CallContext, classification: ShapeClassification) -> Any:
        state = self._start(call)
        try:
            with self._scope(state, call):
                source = invoke(call)
        except InvocationError as wrapped:
            error = normalize_exception(wrapped)
        else:
            if source is None:
                self._done(state, call)
                return None
            if classification.shape is Shape.SYNC_STREAM:
                return self._pull(state, call, source)
            if classification.shape is Shape.ASYNC_STREAM:
                return self._pull_async(state, call, source)
            return InterceptedObservable(self, state, call, source)

        self._fail(state, call, error)
        raise error

    def _next(self, state: Any, call: CallContext, item: Any) -> None:
        if self.on_next is not None:
            self.on_next(state, call, item)

    def _done(self, state: Any, call: CallContext) -> None:
        if self.on_complete is not None:
            self.on_complete(state, call)

    def _pull(self, state: Any, call: CallContext, source: Any) -> Iterator[Any]:
        try:
            iterator = iter(source)
        except Exception as exc:
            self._fail(state, call, exc)
            raise

        while True:
            try:
                with self._scope(state, call):
                    item = next(iterator, _EXHAUSTED)
            except Exception as exc:
                self._fail(state, call, exc)
                raise
            if item is _EXHAUSTED:
                break

            self._next(state, call, item)
            try:
                yield item
            except BaseException:
                _close(iterator)
                raise

        self._done(state, call)

    async def _pull_async(self, state: Any, call: CallContext, source: Any) -> AsyncIterator[Any]:
        try:
            iterator = aiter(source)
        except Exception as exc:
            self._fail(state, call, exc)
            raise

        while True:
            try:
                with self._scope(state, call):
                    item = await anext(iterator, _EXHAUSTED)
            except (Exception, asyncio.CancelledError) as exc:
                self._fail(state, call, exc)
                raise
            if item is _EXHAUSTED:
                break

            self._next(state, call, item)
            try:
                yield item
            except BaseException:
                await _aclose(iterator)
                raise

        self._done(state, call)


def _close(iterator: Any) -> None:
    close = getattr(iterator, "close", None)
    if close is not None:
        close()


async def _aclose(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class InterceptedObservable:
    """Observable returned in place of the target's one.

    Each subscription is forwarded to the source; the unit's hooks see every
    event before the subscriber does. Hooks stop firing once the invocation
    has seen a terminal event, even if the source is subscribed again.
    """

    __slots__ = ("_unit", "_state", "_call", "_source", "_terminated")

    def __init__(self, unit: StreamInterceptor[Any], state: Any, call: CallContext, source: Any) -> None:
        self._unit = unit
        self._state = state
        self._call = call
        self._source = source
        self._terminated = False

    def subscribe(
        self,
        observer: Any = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
        *,
        on_next: Callable[[Any], None] | None = None,
    ) -> Disposable:
        downstream = as_observer(observer, on_next, on_error, on_completed)
        try:
            return self._source.subscribe(_InterceptingObserver(self, downstream))
        except Exception as exc:
            self._error(exc)
            raise

    def _emit(self, value: Any) -> None:
        if not self._terminated:
            self._unit._next(self._state, self._call, value)

    def _error(self, error: BaseException) -> None:
        if not self._terminated:
            self._terminated = True
            self._unit._fail(self._state, self._call, error)

    def _completed(self) -> None:
        if not self._terminated:
            self._terminated = True
            self._unit._done(self._state, self._call)

    def __repr__(self) -> str:
        return f"InterceptedObservable({self._call.method}, source={self._source!r})"


class _InterceptingObserver:
    __slots__ = ("_owner", "_downstream")

    def __init__(self, owner: InterceptedObservable, downstream: Any) -> None:
        self._owner = owner
        self._downstream = downstream

    def on_next(self, value: Any) -> None:
        self._owner._emit(value)
        self._downstream.on_next(value)

    def on_error(self, error: BaseException) -> None:
        self._owner._error(error)
        self._downstream.on_error(error)

    def on_completed(self) -> None:
        self._owner._completed()
        self._downstream.on_completed()
