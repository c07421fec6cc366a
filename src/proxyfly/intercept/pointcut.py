"""Pointcut patterns over interface member names."""

from __future__ import annotations

import functools
import re

from proxyfly.intercept.descriptor import MethodDescriptor


def matches_pointcut(pattern: str, member: MethodDescriptor | str) -> bool:
    """Check whether *member* matches a pointcut *pattern*.

    Members are matched by ``Interface.method`` (see
    :attr:`MethodDescriptor.qualified_name`) or by any dotted string.

    Pattern syntax
    --------------
    * ``*`` : matches exactly one dot-separated segment.
    * ``**``: matches one or more segments.
    * ``?`` and partial globs inside a segment, e.g. ``get_*`` or ``*Repository``.

    Examples
    --------
    >>> matches_pointcut("UserRepository.get_*", "UserRepository.get_user")
    True
    >>> matches_pointcut("*Repository.*", "OrderRepository.save")
    True
    >>> matches_pointcut("*.save", "a.OrderRepository.save")
    False
    """
    name = member.qualified_name if isinstance(member, MethodDescriptor) else member
    return _compile(pattern).fullmatch(name) is not None


def _segment_to_regex(seg: str) -> str:
    if seg == "**":
        return r"(?:[^.]+\.)*[^.]+"
    parts: list[str] = []
    for ch in seg:
        if ch == "*":
            parts.append("[^.]*")
        elif ch == "?":
            parts.append("[^.]")
        else:
            parts.append(re.escape(ch))
    return "".join(parts) if seg != "*" else "[^.]+"


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(r"\.".join(_segment_to_regex(seg) for seg in pattern.split(".")))
