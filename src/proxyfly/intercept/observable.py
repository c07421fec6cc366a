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
"""Push-stream port: the structural contract of subscriber-driven event sources.

Any object with a ``subscribe(observer)`` method returning a handle with
``dispose()`` satisfies :class:`Observable`; ReactiveX observables do, so
proxyfly can intercept them without depending on an Rx library.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

T_co = TypeVar("T_co", covariant=True)
T_contra = TypeVar("T_contra", contravariant=True)


@runtime_checkable
class Disposable(Protocol):
    """Handle returned by ``subscribe``; disposing it unsubscribes."""

    def dispose(self) -> None: ...


@runtime_checkable
class Observer(Protocol[T_contra]):
    """Receives zero or more values, then exactly one terminal event."""

    def on_next(self, value: T_contra) -> None: ...
    def on_error(self, error: BaseException) -> None: ...
    def on_completed(self) -> None: ...


@runtime_checkable
class Observable(Protocol[T_co]):
    """A subscriber-driven source of values."""

    def subscribe(self, observer: Any) -> Disposable: ...


def _ignore(*_args: Any) -> None:
    return None


def _raise(error: BaseException) -> None:
    raise error


class CallbackObserver:
    """Observer built from plain callables.

    A missing ``on_error`` re-raises the error at the emission point, the
    way an unhandled error surfaces in Rx.
    """

    __slots__ = ("_on_next", "_on_error", "_on_completed")

    def __init__(
        self,
        on_next: Callable[[Any], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
    ) -> None:
        self._on_next = on_next or _ignore
        self._on_error = on_error or _raise
        self._on_completed = on_completed or _ignore

    def on_next(self, value: Any) -> None:
        self._on_next(value)

    def on_error(self, error: BaseException) -> None:
        self._on_error(error)

    def on_completed(self) -> None:
        self._on_completed()


def as_observer(
    observer: Any = None,
    on_next: Callable[[Any], None] | None = None,
    on_error: Callable[[BaseException], None] | None = None,
    on_completed: Callable[[], None] | None = None,
) -> Any:
    """Normalize the accepted ``subscribe`` argument styles to one observer.

    Accepts an observer object, a bare ``on_next`` callable as the first
    argument, or keyword callbacks.
    """
    if observer is not None and isinstance(observer, Observer):
        return observer
    if callable(observer):
        on_next = observer
    return CallbackObserver(on_next, on_error, on_completed)
