"""Tests for member filters and pointcut matching."""

from __future__ import annotations

import re

import pytest

from proxyfly.intercept import MemberFilter, MethodDescriptor, matches_pointcut
from proxyfly.intercept.filters import matching, named, pointcut
from proxyfly.kernel.exceptions import InterceptorConfigurationError


class UserRepository:
    pass


class OrderRepository:
    pass


GET_USER = MethodDescriptor(UserRepository, "get_user")
SAVE_USER = MethodDescriptor(UserRepository, "save_user")
SAVE_ORDER = MethodDescriptor(OrderRepository, "save")


class TestMatchesPointcut:
    def test_exact(self) -> None:
        assert matches_pointcut("UserRepository.get_user", GET_USER)

    def test_partial_glob_in_method(self) -> None:
        assert matches_pointcut("UserRepository.get_*", GET_USER)
        assert not matches_pointcut("UserRepository.get_*", SAVE_USER)

    def test_partial_glob_in_type(self) -> None:
        assert matches_pointcut("*Repository.save*", SAVE_ORDER)

    def test_star_matches_one_segment(self) -> None:
        assert matches_pointcut("*.save", SAVE_ORDER)
        assert not matches_pointcut("*.save", "app.OrderRepository.save")

    def test_double_star_matches_many_segments(self) -> None:
        assert matches_pointcut("**.save", "app.OrderRepository.save")

    def test_question_mark(self) -> None:
        assert matches_pointcut("OrderRepository.sav?", SAVE_ORDER)

    def test_plain_strings(self) -> None:
        assert matches_pointcut("a.b", "a.b")
        assert not matches_pointcut("a.b", "a.bc")


class TestMemberFilter:
    def test_empty_filter_admits_everything(self) -> None:
        assert MemberFilter()(GET_USER)

    def test_exclude_mode(self) -> None:
        member_filter = MemberFilter().exclude(named("get_user"))
        assert not member_filter(GET_USER)
        assert member_filter(SAVE_USER)

    def test_include_mode(self) -> None:
        member_filter = MemberFilter().include(matching(r"^save"))
        assert member_filter(SAVE_USER)
        assert member_filter(SAVE_ORDER)
        assert not member_filter(GET_USER)

    def test_any_include_predicate_matches(self) -> None:
        member_filter = MemberFilter().include(named("get_user")).include(pointcut("Order*.*"))
        assert member_filter(GET_USER)
        assert member_filter(SAVE_ORDER)
        assert not member_filter(SAVE_USER)

    def test_compiled_regex(self) -> None:
        assert matching(re.compile("user$"))(SAVE_USER)

    def test_include_after_exclude_rejected(self) -> None:
        with pytest.raises(InterceptorConfigurationError):
            MemberFilter().exclude(named("a")).include(named("b"))

    def test_exclude_after_include_rejected(self) -> None:
        with pytest.raises(InterceptorConfigurationError):
            MemberFilter().include(named("a")).exclude(named("b"))

    def test_copy_is_independent(self) -> None:
        original = MemberFilter().exclude(named("get_user"))
        clone = original.copy()
        clone.exclude(named("save_user"))

        assert original(SAVE_USER)
        assert not clone(SAVE_USER)
