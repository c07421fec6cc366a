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
"""Dynamic proxies: interface-shaped objects that route calls through a chain."""

from __future__ import annotations

import abc
import functools
import inspect
import types
import typing
from collections.abc import Iterable
from typing import Any, TypeVar

import structlog

from proxyfly.intercept.chain import InterceptorChain
from proxyfly.intercept.descriptor import MemberKind, MethodDescriptor
from proxyfly.kernel.exceptions import ProxyCreationError

T = TypeVar("T")

logger = structlog.get_logger(__name__)

_TARGET_ATTR = "_proxyfly_target"
_CHAIN_ATTR = "_proxyfly_chain"

_NON_INTERFACE_BASES = frozenset({object, typing.Protocol, typing.Generic, abc.ABC})


class ProxyFactory:
    """Builds proxies and caches one generated class per interface.

    The generated class subclasses the interface, so ``isinstance`` checks
    against ABCs and plain classes hold. It defines one forwarding member per
    public function or property of the interface and of its ancestors;
    anything else of the target stays unreachable through the proxy.
    """

    def __init__(self) -> None:
        self._members: dict[type, tuple[MethodDescriptor, ...]] = {}
        self._classes: dict[type, type] = {}

    def members(self, interface: type) -> tuple[MethodDescriptor, ...]:
        """Interceptable members of *interface*, created once and cached."""
        cached = self._members.get(interface)
        if cached is None:
            cached = self._members[interface] = tuple(_collect_members(interface))
        return cached

    def proxy_class(self, interface: type) -> type:
        if not isinstance(interface, type):
            raise ProxyCreationError(
                f"Interface must be a class, got {interface!r}",
                code="PROXY_INTERFACE",
            )
        cls = self._classes.get(interface)
        if cls is None:
            cls = self._classes[interface] = self._build_class(interface)
        return cls

    def create(self, interface: type[T], target: Any, chain: InterceptorChain | Iterable[Any]) -> T:
        if target is None:
            raise TypeError("target must not be None")
        if chain is None:
            raise TypeError("chain must not be None")
        if not isinstance(chain, InterceptorChain):
            chain = InterceptorChain(chain)
        return self.proxy_class(interface)(target, chain)

    def _build_class(self, interface: type) -> type:
        descriptors = self.members(interface)

        namespace: dict[str, Any] = {
            "__slots__": (_TARGET_ATTR, _CHAIN_ATTR),
            "__init__": _proxy_init,
            "__repr__": _proxy_repr,
            "__module__": interface.__module__,
        }
        for descriptor in descriptors:
            namespace[descriptor.name] = _forwarder(interface, descriptor)

        cls = types.new_class(
            f"{interface.__name__}Proxy",
            (interface,),
            exec_body=lambda ns: ns.update(namespace),
        )
        # Private, dunder and class-level members are never forwarded.
        unforwarded = sorted(getattr(cls, "__abstractmethods__", ()))
        if unforwarded:
            raise ProxyCreationError(
                f"Cannot proxy {interface.__qualname__}: abstract members {', '.join(unforwarded)} are not interceptable",
                code="PROXY_ABSTRACT",
                context={"interface": interface.__qualname__, "members": unforwarded},
            )
        logger.debug("proxy_class_created", interface=interface.__qualname__, members=len(descriptors))
        return cls


def _collect_members(interface: type) -> list[MethodDescriptor]:
    found: dict[str, MethodDescriptor] = {}
    for cls in reversed(interface.__mro__):
        if cls in _NON_INTERFACE_BASES:
            continue
        for name, value in vars(cls).items():
            if name.startswith("_"):
                continue
            if isinstance(value, property):
                if value.fget is not None:
                    found[name] = MethodDescriptor.from_member(cls, name, value)
            elif inspect.isfunction(value):
                found[name] = MethodDescriptor.from_member(cls, name, value)
    return list(found.values())


def _proxy_init(self: Any, target: Any, chain: InterceptorChain) -> None:
    object.__setattr__(self, _TARGET_ATTR, target)
    object.__setattr__(self, _CHAIN_ATTR, chain)


def _proxy_repr(self: Any) -> str:
    return f"<{type(self).__name__} for {getattr(self, _TARGET_ATTR)!r}>"


def _forwarder(interface: type, descriptor: MethodDescriptor) -> Any:
    declared = inspect.getattr_static(interface, descriptor.name)

    if descriptor.kind is MemberKind.PROPERTY:

        def getter(self: Any) -> Any:
            return getattr(self, _CHAIN_ATTR).handle(getattr(self, _TARGET_ATTR), descriptor)

        return property(functools.wraps(declared.fget, updated=())(getter), doc=declared.__doc__)

    if descriptor.kind is MemberKind.COROUTINE:

        @functools.wraps(declared, updated=())
        async def forward_async(self: Any, *args: Any, **kwargs: Any) -> Any:
            return await getattr(self, _CHAIN_ATTR).handle(getattr(self, _TARGET_ATTR), descriptor, args, kwargs)

        return forward_async

    @functools.wraps(declared, updated=())
    def forward(self: Any, *args: Any, **kwargs: Any) -> Any:
        return getattr(self, _CHAIN_ATTR).handle(getattr(self, _TARGET_ATTR), descriptor, args, kwargs)

    return forward


_default_factory = ProxyFactory()


def create_proxy(interface: type[T], target: Any, chain: InterceptorChain | Iterable[Any]) -> T:
    """Wrap *target* in a proxy implementing *interface*.

    Every call of an interface member becomes
    ``chain.handle(target, member, args, kwargs)``. The proxy never closes
    or disposes the target. Several proxies, with different chains, may
    wrap the same target independently.

    Usage::

        repository = create_proxy(UserRepository, SqlUserRepository(), chain)
        user = repository.get_user("42")
    """
    return _default_factory.create(interface, target, chain)


def proxy_target(proxy: Any) -> Any:
    """The object wrapped by *proxy*."""
    return getattr(proxy, _TARGET_ATTR)


def proxy_chain(proxy: Any) -> InterceptorChain:
    """The chain used by *proxy*."""
    return getattr(proxy, _CHAIN_ATTR)
