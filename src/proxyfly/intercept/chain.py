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
"""InterceptorChain: first-match routing of calls to interceptor units."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from proxyfly.intercept.descriptor import CallContext, MethodDescriptor
from proxyfly.intercept.invocation import call_member
from proxyfly.intercept.shapes import classify
from proxyfly.intercept.units import InterceptorUnit

_UNROUTED = object()


class InterceptorChain:
    """An immutable, ordered list of interceptor units.

    For every call the first unit whose family matches the member's shape
    and whose ``admit`` accepts it handles the whole call; at most one unit
    ever runs. When none accepts, the target is called directly and its raw
    result (or exception) is returned.

    The routing decision is memoized per member. ``prepend``, ``add`` and
    ``extend`` return new chains and leave this one untouched.

    Usage::

        chain = InterceptorChain([
            StreamInterceptor.of(hooks),
            AsyncInterceptor.of(hooks),
            ValueInterceptor.of(hooks),
        ])
        result = chain.handle(target, descriptor, ("42",))
    """

    __slots__ = ("_units", "_routes")

    def __init__(self, units: Iterable[InterceptorUnit[Any]] = ()) -> None:
        self._units: tuple[InterceptorUnit[Any], ...] = tuple(units)
        for unit in self._units:
            if not isinstance(unit, InterceptorUnit):
                raise TypeError(f"Expected an InterceptorUnit, got {type(unit).__name__}")
        self._routes: dict[MethodDescriptor, Any] = {}

    @property
    def units(self) -> tuple[InterceptorUnit[Any], ...]:
        return self._units

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[InterceptorUnit[Any]]:
        return iter(self._units)

    def __repr__(self) -> str:
        names = ", ".join(type(unit).__name__ for unit in self._units)
        return f"InterceptorChain([{names}])"

    def prepend(self, unit: InterceptorUnit[Any]) -> InterceptorChain:
        return InterceptorChain((unit, *self._units))

    def add(self, unit: InterceptorUnit[Any]) -> InterceptorChain:
        return InterceptorChain((*self._units, unit))

    def extend(self, units: Iterable[InterceptorUnit[Any]]) -> InterceptorChain:
        return InterceptorChain((*self._units, *units))

    def route(self, call: CallContext) -> InterceptorUnit[Any] | None:
        """Return the unit handling *call*'s member, or ``None`` for pass-through.

        Exceptions raised by ``admit`` propagate immediately; later units
        are not consulted and nothing is memoized.
        """
        unit = self._routes.get(call.method, _UNROUTED)
        if unit is not _UNROUTED:
            return unit

        family = classify(call.method).family
        selected = None
        for candidate in self._units:
            if candidate.family is family and candidate.admits(call):
                selected = candidate
                break

        self._routes[call.method] = selected
        return selected

    def handle(
        self,
        target: Any,
        method: MethodDescriptor,
        args: tuple = (),
        kwargs: Mapping[str, Any] | None = None,
    ) -> Any:
        """Dispatch one call of *method* on *target* through the chain."""
        call = CallContext(target, method, tuple(args), dict(kwargs or {}))
        unit = self.route(call)
        if unit is None:
            return call_member(call)
        return unit.intercept(call, classify(method))
