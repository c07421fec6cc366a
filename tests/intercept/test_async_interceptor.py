"""Tests for AsyncInterceptor through proxies."""

from __future__ import annotations

import asyncio
import traceback
from collections.abc import Awaitable

import pytest

from proxyfly.intercept import AsyncInterceptor, InterceptorChain, ValueInterceptor, create_proxy
from proxyfly.kernel.exceptions import InvocationError


class InvalidArgument(Exception):
    pass


class OrderStore:
    async def load(self, order_id: str) -> dict: ...

    async def save(self) -> None: ...

    async def wait(self) -> None: ...

    def schedule(self, order_id: str) -> asyncio.Task[str]: ...

    def pending(self) -> Awaitable[int]: ...

    def broken(self) -> Awaitable[int]: ...

    def send(self, message: str) -> Awaitable[None]: ...


class MemoryOrderStore:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.sent: list[str] = []

    async def load(self, order_id: str) -> dict:
        await asyncio.sleep(0)
        return {"id": order_id}

    async def save(self) -> None:
        raise InvalidArgument("bad id")

    async def wait(self) -> None:
        self.started.set()
        await asyncio.sleep(10)

    def schedule(self, order_id: str) -> asyncio.Task[str]:
        async def run() -> str:
            return order_id.upper()

        return asyncio.ensure_future(run())

    def pending(self) -> Awaitable[int]:
        return asyncio.sleep(0, result=7)

    def broken(self) -> Awaitable[int]:
        raise InvalidArgument("not even started")

    def send(self, message: str) -> Awaitable[None]:
        self.sent.append(message)
        return asyncio.sleep(0)


def _store(recorder) -> OrderStore:
    return create_proxy(OrderStore, MemoryOrderStore(), InterceptorChain([AsyncInterceptor.of(recorder)]))


class TestAsyncInterceptor:
    @pytest.mark.asyncio
    async def test_success(self, recorder) -> None:
        result = await _store(recorder).load("o-1")

        assert result == {"id": "o-1"}
        assert recorder.events == [
            ("before", "load", ("o-1",)),
            ("success", "state:load", {"id": "o-1"}),
        ]

    @pytest.mark.asyncio
    async def test_failure_reports_original_exception(self, recorder) -> None:
        with pytest.raises(InvalidArgument, match="bad id") as info:
            await _store(recorder).save()

        assert recorder.kinds == ["before", "error"]
        assert recorder.errors == [info.value]
        assert str(recorder.errors[0]) == "bad id"

    @pytest.mark.asyncio
    async def test_awaitable_returning_member(self, recorder) -> None:
        assert await _store(recorder).pending() == 7
        assert recorder.kinds == ["before", "success"]

    @pytest.mark.asyncio
    async def test_plain_member_calls_target_when_called(self, recorder) -> None:
        target = MemoryOrderStore()
        store = create_proxy(OrderStore, target, [AsyncInterceptor.of(recorder)])

        pending = store.send("a")

        assert target.sent == ["a"]
        assert recorder.kinds == ["before"]
        await pending
        assert recorder.kinds == ["before", "success"]

    @pytest.mark.asyncio
    async def test_coroutine_member_runs_when_awaited(self, recorder) -> None:
        store = _store(recorder)

        pending = store.load("x")
        assert recorder.events == []

        assert await pending == {"id": "x"}
        assert recorder.kinds == ["before", "success"]

    @pytest.mark.asyncio
    async def test_asynchronous_before_defers_target_call(self) -> None:
        order: list[str] = []

        async def before(call):
            order.append("before")
            return None

        target = MemoryOrderStore()
        store = create_proxy(OrderStore, target, [AsyncInterceptor(before=before)])

        pending = store.send("b")
        assert (order, target.sent) == ([], [])

        await pending
        assert (order, target.sent) == (["before"], ["b"])

    def test_call_time_failure_raises_from_the_call(self, recorder) -> None:
        store = _store(recorder)

        with pytest.raises(InvalidArgument, match="not even started"):
            store.broken()

        assert recorder.events == [
            ("before", "broken", ()),
            ("error", "state:broken", "InvalidArgument"),
        ]

    @pytest.mark.asyncio
    async def test_call_time_failure_with_async_error_hook_raises_when_awaited(self) -> None:
        reported: list[str] = []

        async def on_error(state, call, error):
            await asyncio.sleep(0)
            reported.append(type(error).__name__)

        store = create_proxy(OrderStore, MemoryOrderStore(), [AsyncInterceptor(on_error=on_error)])

        pending = store.broken()
        with pytest.raises(InvalidArgument):
            await pending
        assert reported == ["InvalidArgument"]

    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_their_own_state(self) -> None:
        seen: list[tuple[str, str]] = []

        def before(call):
            return f"token-{call.args[0]}"

        def on_success(state, call, result):
            seen.append((state, result["id"]))

        store = create_proxy(
            OrderStore, MemoryOrderStore(), [AsyncInterceptor(before=before, on_success=on_success)]
        )
        results = await asyncio.gather(store.load("a"), store.load("b"))

        assert results == [{"id": "a"}, {"id": "b"}]
        assert sorted(seen) == [("token-a", "a"), ("token-b", "b")]

    @pytest.mark.asyncio
    async def test_awaited_failure_keeps_target_traceback(self, recorder) -> None:
        with pytest.raises(InvalidArgument) as info:
            await _store(recorder).save()

        frames = [frame.name for frame in traceback.extract_tb(info.value.__traceback__)]
        assert "save" in frames
        assert info.value.__cause__ is None
        assert not isinstance(info.value.__context__, InvocationError)

    def test_call_time_failure_keeps_target_traceback(self, recorder) -> None:
        with pytest.raises(InvalidArgument) as info:
            _store(recorder).broken()

        frames = [frame.name for frame in traceback.extract_tb(info.value.__traceback__)]
        assert "broken" in frames
        assert info.value.__cause__ is None
        assert not isinstance(info.value.__context__, InvocationError)

    @pytest.mark.asyncio
    async def test_cancellation_reaches_on_error(self, recorder) -> None:
        target = MemoryOrderStore()
        store = create_proxy(OrderStore, target, [AsyncInterceptor.of(recorder)])

        task = asyncio.ensure_future(store.wait())
        await target.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert recorder.kinds == ["before", "error"]
        assert isinstance(recorder.errors[0], asyncio.CancelledError)

    @pytest.mark.asyncio
    async def test_task_returning_member_returns_task(self, recorder) -> None:
        result = _store(recorder).schedule("abc")

        assert isinstance(result, asyncio.Task)
        assert await result == "ABC"
        assert recorder.kinds == ["before", "success"]

    @pytest.mark.asyncio
    async def test_async_hooks_are_awaited(self) -> None:
        order: list[str] = []

        async def before(call):
            await asyncio.sleep(0)
            order.append("before")
            return "token"

        async def on_success(state, call, result):
            await asyncio.sleep(0)
            order.append(f"success:{state}:{result['id']}")

        store = create_proxy(
            OrderStore, MemoryOrderStore(), [AsyncInterceptor(before=before, on_success=on_success)]
        )
        await store.load("x")
        assert order == ["before", "success:token:x"]

    @pytest.mark.asyncio
    async def test_value_unit_does_not_handle_async_members(self, recorder) -> None:
        store = create_proxy(OrderStore, MemoryOrderStore(), [ValueInterceptor.of(recorder)])

        assert await store.load("o-2") == {"id": "o-2"}
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_async_save_failure_scenario(self, recorder) -> None:
        store = _store(recorder)

        with pytest.raises(InvalidArgument) as info:
            await store.save()

        assert recorder.kinds == ["before", "error"]
        assert type(recorder.errors[0]) is InvalidArgument
        assert recorder.errors[0] is info.value
