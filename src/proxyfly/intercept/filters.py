"""MemberFilter: include or exclude interface members from interception."""

from __future__ import annotations

import re
from collections.abc import Callable

from proxyfly.intercept.descriptor import MethodDescriptor
from proxyfly.intercept.pointcut import matches_pointcut
from proxyfly.kernel.exceptions import InterceptorConfigurationError

MemberPredicate = Callable[[MethodDescriptor], bool]


class MemberFilter:
    """Either an include list or an exclude list of member predicates.

    With include predicates, only members matching one of them are
    intercepted; with exclude predicates (the default mode), every member
    except the matching ones is. Mixing both modes is a configuration error.
    """

    def __init__(self) -> None:
        self._include = False
        self._predicates: list[MemberPredicate] = []

    def copy(self) -> MemberFilter:
        clone = MemberFilter()
        clone._include = self._include
        clone._predicates = list(self._predicates)
        return clone

    def include(self, predicate: MemberPredicate) -> MemberFilter:
        if not self._include and self._predicates:
            raise InterceptorConfigurationError("Cannot include members after excluding members")
        self._include = True
        self._predicates.append(predicate)
        return self

    def exclude(self, predicate: MemberPredicate) -> MemberFilter:
        if self._include and self._predicates:
            raise InterceptorConfigurationError("Cannot exclude members after including members")
        self._include = False
        self._predicates.append(predicate)
        return self

    def __call__(self, method: MethodDescriptor) -> bool:
        matched = any(predicate(method) for predicate in self._predicates)
        return matched if self._include else not matched


def named(name: str) -> MemberPredicate:
    return lambda method: method.name == name


def matching(pattern: str | re.Pattern[str]) -> MemberPredicate:
    """Members whose name contains a match of the regular expression."""
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    return lambda method: compiled.search(method.name) is not None


def pointcut(pattern: str) -> MemberPredicate:
    """Members whose ``Interface.method`` name matches a pointcut glob."""
    return lambda method: matches_pointcut(pattern, method)
