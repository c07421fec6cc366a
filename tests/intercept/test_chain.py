"""Tests for InterceptorChain routing."""

from __future__ import annotations

import inspect
from collections.abc import Iterator

import pytest

from proxyfly.intercept import (
    AsyncInterceptor,
    CallContext,
    InterceptorChain,
    MethodDescriptor,
    StreamInterceptor,
    ValueInterceptor,
)


class Inventory:
    def count(self, sku: str) -> int: ...

    def skus(self) -> Iterator[str]: ...

    async def reserve(self, sku: str) -> bool: ...


class Warehouse:
    def count(self, sku: str) -> int:
        return {"a": 3}.get(sku, 0)

    def skus(self) -> Iterator[str]:
        return iter(["a", "b"])

    async def reserve(self, sku: str) -> bool:
        return sku == "a"


def _describe(name: str) -> MethodDescriptor:
    return MethodDescriptor.from_member(Inventory, name, inspect.getattr_static(Inventory, name))


class TestRouting:
    def test_value_call_skips_stream_unit(self, recorder) -> None:
        stream_calls: list[str] = []
        chain = InterceptorChain([
            StreamInterceptor(before=lambda call: stream_calls.append(call.method.name)),
            ValueInterceptor.of(recorder),
        ])

        assert chain.handle(Warehouse(), _describe("count"), ("a",)) == 3
        assert stream_calls == []
        assert recorder.kinds == ["before", "success"]

    def test_first_admitting_unit_wins(self) -> None:
        seen: list[str] = []
        chain = InterceptorChain([
            ValueInterceptor(before=lambda call: seen.append("first")),
            ValueInterceptor(before=lambda call: seen.append("second")),
        ])

        chain.handle(Warehouse(), _describe("count"), ("a",))
        assert seen == ["first"]

    def test_rejected_by_admit_falls_through(self) -> None:
        seen: list[str] = []
        chain = InterceptorChain([
            ValueInterceptor(before=lambda call: seen.append("first"), admit=lambda t, m, a: False),
            ValueInterceptor(before=lambda call: seen.append("second")),
        ])

        chain.handle(Warehouse(), _describe("count"), ("a",))
        assert seen == ["second"]

    def test_pass_through_returns_raw_result(self) -> None:
        chain = InterceptorChain([StreamInterceptor()])
        result = chain.handle(Warehouse(), _describe("count"), ("a",))
        assert result == 3

    def test_pass_through_preserves_result_identity(self) -> None:
        marker = object()

        class Target:
            def count(self, sku: str) -> object:
                return marker

        chain = InterceptorChain()
        assert chain.handle(Target(), _describe("count"), ("a",)) is marker

    def test_pass_through_raises_target_exception_unwrapped(self) -> None:
        class Failing:
            def count(self, sku: str) -> int:
                raise KeyError(sku)

        with pytest.raises(KeyError):
            InterceptorChain().handle(Failing(), _describe("count"), ("a",))

    def test_route_returns_none_without_match(self) -> None:
        chain = InterceptorChain([AsyncInterceptor()])
        assert chain.route(CallContext(Warehouse(), _describe("count"), ("a",))) is None


class TestAdmissionMemo:
    def test_admit_evaluated_once_per_member(self) -> None:
        admitted: list[str] = []

        def admit(target, method, args) -> bool:
            admitted.append(method.name)
            return True

        chain = InterceptorChain([ValueInterceptor(admit=admit)])
        target = Warehouse()
        for sku in ("a", "b", "c"):
            chain.handle(target, _describe("count"), (sku,))

        assert admitted == ["count"]

    def test_rejection_is_memoized_too(self) -> None:
        admitted: list[str] = []

        def admit(target, method, args) -> bool:
            admitted.append(method.name)
            return False

        chain = InterceptorChain([ValueInterceptor(admit=admit)])
        chain.handle(Warehouse(), _describe("count"), ("a",))
        chain.handle(Warehouse(), _describe("count"), ("b",))
        assert admitted == ["count"]

    def test_admit_receives_target_member_and_args(self) -> None:
        received: list[tuple] = []
        target = Warehouse()
        chain = InterceptorChain([
            ValueInterceptor(admit=lambda t, m, a: received.append((t, m.name, a)) or True),
        ])

        chain.handle(target, _describe("count"), ("a",))
        assert received == [(target, "count", ("a",))]

    def test_admission_error_propagates_and_is_not_cached(self) -> None:
        attempts: list[int] = []

        def admit(target, method, args) -> bool:
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("admission failed")
            return True

        later: list[str] = []
        chain = InterceptorChain([
            ValueInterceptor(admit=admit),
            ValueInterceptor(before=lambda call: later.append("later")),
        ])

        with pytest.raises(RuntimeError, match="admission failed"):
            chain.handle(Warehouse(), _describe("count"), ("a",))
        assert later == []

        assert chain.handle(Warehouse(), _describe("count"), ("a",)) == 3
        assert len(attempts) == 2


class TestImmutability:
    def test_add_returns_new_chain(self) -> None:
        chain = InterceptorChain([ValueInterceptor()])
        extended = chain.add(StreamInterceptor())

        assert len(chain) == 1
        assert len(extended) == 2
        assert isinstance(extended.units[1], StreamInterceptor)

    def test_prepend_and_extend(self) -> None:
        value = ValueInterceptor()
        stream = StreamInterceptor()
        chain = InterceptorChain([value]).prepend(stream).extend([AsyncInterceptor()])

        assert [type(unit) for unit in chain] == [StreamInterceptor, ValueInterceptor, AsyncInterceptor]

    def test_units_is_a_tuple(self) -> None:
        assert isinstance(InterceptorChain([ValueInterceptor()]).units, tuple)

    def test_rejects_non_units(self) -> None:
        with pytest.raises(TypeError):
            InterceptorChain([object()])

    def test_repr_lists_units(self) -> None:
        chain = InterceptorChain([StreamInterceptor(), ValueInterceptor()])
        assert repr(chain) == "InterceptorChain([StreamInterceptor, ValueInterceptor])"
