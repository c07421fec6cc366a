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
"""Return-shape classification of interface members.

Every member is classified once into one of five call shapes. The shape
decides which interceptor family may handle the member and how its result
is wrapped: plain values, awaitables, pulled sequences, or pushed events.
"""

from __future__ import annotations

import asyncio
import collections.abc
import enum
import functools
import inspect
import types
import typing
from dataclasses import dataclass
from typing import Any

import structlog

from proxyfly.intercept.descriptor import MemberKind, MethodDescriptor
from proxyfly.intercept.observable import Observable

logger = structlog.get_logger(__name__)

NO_VALUE: type = type(None)
"""Inner type of an awaitable that resolves without a value."""


class ShapeFamily(enum.Enum):
    """Interceptor families; completion contracts differ per family."""

    VALUE = "value"
    ASYNC = "async"
    STREAM = "stream"


class Shape(enum.Enum):
    VALUE = "value"
    ASYNC_SINGLE = "async_single"
    SYNC_STREAM = "sync_stream"
    ASYNC_STREAM = "async_stream"
    PUSH_STREAM = "push_stream"

    @property
    def family(self) -> ShapeFamily:
        return _FAMILIES[self]


_FAMILIES = {
    Shape.VALUE: ShapeFamily.VALUE,
    Shape.ASYNC_SINGLE: ShapeFamily.ASYNC,
    Shape.SYNC_STREAM: ShapeFamily.STREAM,
    Shape.ASYNC_STREAM: ShapeFamily.STREAM,
    Shape.PUSH_STREAM: ShapeFamily.STREAM,
}

# Higher wins when a union admits several shapes.
_PRIORITY = {
    Shape.VALUE: 0,
    Shape.PUSH_STREAM: 1,
    Shape.SYNC_STREAM: 2,
    Shape.ASYNC_SINGLE: 3,
    Shape.ASYNC_STREAM: 4,
}


@dataclass(frozen=True)
class ShapeClassification:
    """Result of classifying a member.

    Attributes:
        shape: The call shape.
        inner_type: Type of the values flowing through the shape: the
            resolved value of an awaitable (``NO_VALUE`` when it has none),
            the element type of a stream, or the return type itself.
        eager: ``True`` for awaitables that are already running when
            returned (``asyncio.Future``/``asyncio.Task``).
    """

    shape: Shape
    inner_type: Any = Any
    eager: bool = False

    @property
    def family(self) -> ShapeFamily:
        return self.shape.family


def _value(annotation: Any) -> ShapeClassification:
    if annotation is inspect.Signature.empty:
        annotation = Any
    return ShapeClassification(Shape.VALUE, annotation)


def _first_arg(args: tuple) -> Any:
    return args[0] if args else Any


def _awaited(annotation: Any) -> Any:
    if annotation is inspect.Signature.empty:
        return Any
    if annotation is None:
        return NO_VALUE
    return annotation


def classify_return_type(annotation: Any) -> ShapeClassification:
    """Classify a return annotation into a call shape.

    Never raises: anything that cannot be understood is a ``VALUE``.
    """
    try:
        return _classify(annotation)
    except Exception as exc:
        logger.debug("shape_classification_failed", annotation=repr(annotation), error=str(exc))
        return _value(annotation)


def _classify(annotation: Any) -> ShapeClassification:
    if annotation is inspect.Signature.empty or annotation is None or isinstance(annotation, str):
        return _value(annotation)

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin is typing.Annotated:
        return _classify(args[0])

    if origin is typing.Union or origin is types.UnionType:
        candidates = [_classify(arg) for arg in args if arg is not NO_VALUE]
        best = max(candidates, key=lambda c: _PRIORITY[c.shape], default=None)
        if best is None or best.shape is Shape.VALUE:
            return _value(annotation)
        return best

    cls = origin if origin is not None else annotation
    if not isinstance(cls, type):
        return _value(annotation)

    if issubclass(cls, asyncio.Future):
        return ShapeClassification(Shape.ASYNC_SINGLE, _awaited(_first_arg(args)), eager=True)
    if issubclass(cls, collections.abc.Coroutine):
        return ShapeClassification(Shape.ASYNC_SINGLE, _awaited(args[2] if len(args) == 3 else Any))
    if issubclass(cls, collections.abc.AsyncIterable):
        return ShapeClassification(Shape.ASYNC_STREAM, _first_arg(args))
    if issubclass(cls, collections.abc.Awaitable):
        return ShapeClassification(Shape.ASYNC_SINGLE, _awaited(_first_arg(args)))
    if issubclass(cls, collections.abc.Iterator) or cls is collections.abc.Iterable:
        return ShapeClassification(Shape.SYNC_STREAM, _first_arg(args))
    if issubclass(cls, Observable):
        return ShapeClassification(Shape.PUSH_STREAM, _first_arg(args))

    return _value(annotation)


@functools.lru_cache(maxsize=None)
def classify(method: MethodDescriptor) -> ShapeClassification:
    """Classify *method*, memoized per descriptor.

    The declaration style wins over the annotation: an ``async def`` is an
    awaitable whose annotation is its resolved value, and (async) generator
    functions are streams whose annotation names the element type.
    """
    if method.kind is MemberKind.COROUTINE:
        return ShapeClassification(Shape.ASYNC_SINGLE, _awaited(method.return_type))
    if method.kind is MemberKind.ASYNC_GENERATOR:
        return ShapeClassification(Shape.ASYNC_STREAM, _element_type(method.return_type))
    if method.kind is MemberKind.GENERATOR:
        return ShapeClassification(Shape.SYNC_STREAM, _element_type(method.return_type))
    return classify_return_type(method.return_type)


def _element_type(annotation: Any) -> Any:
    if annotation is inspect.Signature.empty or isinstance(annotation, str):
        return Any
    return _first_arg(typing.get_args(annotation))
