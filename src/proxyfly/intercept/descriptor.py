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
"""Method descriptors and per-call context."""

from __future__ import annotations

import enum
import inspect
import typing
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class MemberKind(enum.Enum):
    """How an interface member is declared."""

    FUNCTION = "function"
    COROUTINE = "coroutine"
    GENERATOR = "generator"
    ASYNC_GENERATOR = "async_generator"
    PROPERTY = "property"


@dataclass(frozen=True)
class MethodDescriptor:
    """Identifies an interceptable interface member.

    Equality and hashing only use ``declaring_type``, ``name`` and ``kind``:
    Python has no overloading, and annotations are not always hashable.

    Attributes:
        declaring_type: The interface class that declares the member.
        name: Attribute name of the member.
        kind: Whether it is a plain function, coroutine function, generator
            function, async generator function, or a read property.
        parameters: ``(name, annotation)`` pairs, excluding ``self``.
        positional: Names of the parameters that accept positional
            arguments, in order. ``*args`` and ``**kwargs`` are not among them.
        return_type: The resolved return annotation, or
            ``inspect.Signature.empty`` when the member has none.
    """

    declaring_type: type
    name: str
    kind: MemberKind = MemberKind.FUNCTION
    parameters: tuple[tuple[str, Any], ...] = field(default=(), compare=False)
    positional: tuple[str, ...] = field(default=(), compare=False)
    return_type: Any = field(default=inspect.Signature.empty, compare=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.declaring_type.__name__}.{self.name}"

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.parameters)

    @property
    def is_property(self) -> bool:
        return self.kind is MemberKind.PROPERTY

    def __str__(self) -> str:
        return self.qualified_name

    @classmethod
    def from_member(cls, declaring_type: type, name: str, member: Any) -> MethodDescriptor:
        """Build a descriptor for a function or property found on *declaring_type*."""
        if isinstance(member, property):
            func = member.fget
            kind = MemberKind.PROPERTY
        else:
            func = member
            kind = _kind_of(func)

        hints = _resolve_hints(func)
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            signature = None

        parameters: list[tuple[str, Any]] = []
        positional: list[str] = []
        return_type: Any = inspect.Signature.empty
        if signature is not None:
            for index, param in enumerate(signature.parameters.values()):
                if index == 0 and param.name in ("self", "cls"):
                    continue
                parameters.append((param.name, hints.get(param.name, param.annotation)))
                if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
                    positional.append(param.name)
            return_type = hints.get("return", signature.return_annotation)

        return cls(
            declaring_type=declaring_type,
            name=name,
            kind=kind,
            parameters=tuple(parameters),
            positional=tuple(positional),
            return_type=return_type,
        )


def _kind_of(func: Any) -> MemberKind:
    if inspect.isasyncgenfunction(func):
        return MemberKind.ASYNC_GENERATOR
    if inspect.iscoroutinefunction(func):
        return MemberKind.COROUTINE
    if inspect.isgeneratorfunction(func):
        return MemberKind.GENERATOR
    return MemberKind.FUNCTION


def _resolve_hints(func: Any) -> dict[str, Any]:
    """Resolve annotations, falling back to the raw ones on any failure."""
    try:
        return typing.get_type_hints(func)
    except Exception as exc:  # unresolvable forward references, malformed generics
        logger.debug("annotation_resolution_failed", member=getattr(func, "__qualname__", func), error=str(exc))
        return dict(getattr(func, "__annotations__", {}) or {})


@dataclass(frozen=True, eq=False)
class CallContext:
    """One invocation of an interface member through a proxy."""

    target: Any
    method: MethodDescriptor
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def arguments(self) -> dict[str, Any]:
        """Map argument values to parameter names.

        Values collected by a ``*args`` parameter are omitted; keyword
        arguments, including those collected by ``**kwargs``, keep their names.
        """
        named = dict(zip(self.method.positional, self.args))
        named.update(self.kwargs)
        return named
