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
"""Invoking the real member and normalizing its failures."""

from __future__ import annotations

from typing import Any

from proxyfly.intercept.descriptor import CallContext
from proxyfly.kernel.exceptions import InvocationError


def call_member(call: CallContext) -> Any:
    """Call the target member directly; failures propagate untouched."""
    member = getattr(call.target, call.method.name)
    if call.method.is_property:
        return member
    return member(*call.args, **call.kwargs)


def invoke(call: CallContext) -> Any:
    """Call the target member, wrapping call-time failures in :class:`InvocationError`.

    Only failures raised while dispatching the call are wrapped. Awaiting or
    iterating the returned object raises the target's exceptions directly.
    """
    if call.method.is_property:
        try:
            return getattr(call.target, call.method.name)
        except Exception as exc:
            raise InvocationError(call.method, exc) from exc

    member = getattr(call.target, call.method.name)
    try:
        return member(*call.args, **call.kwargs)
    except Exception as exc:
        raise InvocationError(call.method, exc) from exc


def normalize_exception(error: BaseException) -> BaseException:
    """Strip exactly one level of invocation wrapping.

    An :class:`InvocationError` raised by application code and then wrapped
    by the invoker comes back as that application error, unchanged.
    """
    if isinstance(error, InvocationError):
        return error.original
    return error
