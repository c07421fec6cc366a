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
"""Interception of plain value-returning calls."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from proxyfly.intercept.descriptor import CallContext
from proxyfly.intercept.invocation import invoke, normalize_exception
from proxyfly.intercept.shapes import ShapeClassification, ShapeFamily
from proxyfly.intercept.units import InterceptorUnit, S
from proxyfly.kernel.exceptions import InvocationError


@dataclass(frozen=True)
class ValueInterceptor(InterceptorUnit[S]):
    """Intercepts synchronous calls.

    ``before`` runs immediately before the real call, then exactly one of
    ``on_success(state, call, result)`` or ``on_error(state, call, error)``
    runs immediately after it. Nothing suspends.

    Usage::

        unit = ValueInterceptor(
            before=lambda call: time.perf_counter(),
            on_success=lambda started, call, result: print(call.method, result),
        )
    """

    family: ClassVar[ShapeFamily] = ShapeFamily.VALUE

    on_success: Callable[[Any, CallContext, Any], Any] | None = None

    def intercept(self, call: CallContext, classification: ShapeClassification) -> Any:
        state = self._start(call)
        try:
            with self._scope(state, call):
                result = invoke(call)
        except InvocationError as wrapped:
            error = normalize_exception(wrapped)
        else:
            if self.on_success is not None:
                self.on_success(state, call, result)
            return result

        self._fail(state, call, error)
        raise error
