"""Tests for return-shape classification."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Coroutine, Generator, Iterable, Iterator
from typing import Annotated, Any, Optional

import pytest

from proxyfly.intercept import (
    NO_VALUE,
    MethodDescriptor,
    Observable,
    Shape,
    ShapeFamily,
    classify,
    classify_return_type,
)


class User:
    pass


class Catalog:
    def get_user(self, user_id: str) -> User: ...

    async def fetch(self) -> User: ...

    async def touch(self) -> None: ...

    def items(self) -> Iterator[int]: ...

    def generate(self) -> Generator[str, None, None]:
        yield "x"

    async def stream(self) -> AsyncIterator[bytes]:
        yield b"x"

    def events(self) -> Observable[int]: ...

    def scheduled(self) -> asyncio.Task[int]: ...

    def untyped(self): ...

    @property
    def name(self) -> str:
        return "catalog"


def _describe(name: str) -> MethodDescriptor:
    return MethodDescriptor.from_member(Catalog, name, inspect.getattr_static(Catalog, name))


class TestClassifyReturnType:
    @pytest.mark.parametrize(
        ("annotation", "shape"),
        [
            (int, Shape.VALUE),
            (list[int], Shape.VALUE),
            (dict[str, int], Shape.VALUE),
            (Iterator[int], Shape.SYNC_STREAM),
            (Iterable[int], Shape.SYNC_STREAM),
            (Generator[int, None, None], Shape.SYNC_STREAM),
            (AsyncIterator[int], Shape.ASYNC_STREAM),
            (Awaitable[int], Shape.ASYNC_SINGLE),
            (Coroutine[Any, Any, int], Shape.ASYNC_SINGLE),
            (asyncio.Future[int], Shape.ASYNC_SINGLE),
            (Observable[int], Shape.PUSH_STREAM),
        ],
    )
    def test_shapes(self, annotation: Any, shape: Shape) -> None:
        assert classify_return_type(annotation).shape is shape

    def test_collections_are_values_not_streams(self) -> None:
        # Re-iterable containers are returned as-is.
        assert classify_return_type(list[int]).shape is Shape.VALUE
        assert classify_return_type(tuple[int, ...]).shape is Shape.VALUE

    def test_inner_type_of_awaitable(self) -> None:
        assert classify_return_type(Awaitable[User]).inner_type is User

    def test_awaitable_of_none_has_no_value(self) -> None:
        assert classify_return_type(Awaitable[None]).inner_type is NO_VALUE

    def test_coroutine_inner_type_is_the_send_result(self) -> None:
        assert classify_return_type(Coroutine[Any, Any, User]).inner_type is User

    def test_stream_element_type(self) -> None:
        classification = classify_return_type(AsyncIterator[bytes])
        assert classification.inner_type is bytes
        assert classification.family is ShapeFamily.STREAM

    def test_future_is_eager(self) -> None:
        assert classify_return_type(asyncio.Task[int]).eager is True
        assert classify_return_type(Awaitable[int]).eager is False

    def test_missing_annotation_is_value(self) -> None:
        assert classify_return_type(None).shape is Shape.VALUE
        assert classify_return_type("UnresolvedForwardRef").shape is Shape.VALUE

    def test_annotated_is_unwrapped(self) -> None:
        assert classify_return_type(Annotated[Iterator[int], "meta"]).shape is Shape.SYNC_STREAM

    def test_optional_stream_is_stream(self) -> None:
        assert classify_return_type(Optional[Iterator[int]]).shape is Shape.SYNC_STREAM

    def test_union_prefers_highest_priority_shape(self) -> None:
        assert classify_return_type(Iterator[int] | Awaitable[int]).shape is Shape.ASYNC_SINGLE

    def test_union_of_values_is_value(self) -> None:
        assert classify_return_type(int | str).shape is Shape.VALUE

    def test_never_raises(self) -> None:
        class Weird:
            def __class_getitem__(cls, item):
                return item

        assert classify_return_type(object()).shape is Shape.VALUE
        assert classify_return_type(Weird).shape is Shape.VALUE


class TestClassifyMember:
    def test_plain_method(self) -> None:
        classification = classify(_describe("get_user"))
        assert classification.shape is Shape.VALUE
        assert classification.inner_type is User

    def test_async_def_uses_annotation_as_result(self) -> None:
        classification = classify(_describe("fetch"))
        assert classification.shape is Shape.ASYNC_SINGLE
        assert classification.inner_type is User
        assert classification.family is ShapeFamily.ASYNC

    def test_async_def_returning_none(self) -> None:
        assert classify(_describe("touch")).inner_type is NO_VALUE

    def test_iterator_annotation(self) -> None:
        assert classify(_describe("items")).shape is Shape.SYNC_STREAM

    def test_generator_function(self) -> None:
        classification = classify(_describe("generate"))
        assert classification.shape is Shape.SYNC_STREAM
        assert classification.inner_type is str

    def test_async_generator_function(self) -> None:
        classification = classify(_describe("stream"))
        assert classification.shape is Shape.ASYNC_STREAM
        assert classification.inner_type is bytes

    def test_observable(self) -> None:
        assert classify(_describe("events")).shape is Shape.PUSH_STREAM

    def test_task_is_eager_async(self) -> None:
        classification = classify(_describe("scheduled"))
        assert classification.shape is Shape.ASYNC_SINGLE
        assert classification.eager

    def test_untyped_is_value(self) -> None:
        assert classify(_describe("untyped")).shape is Shape.VALUE

    def test_property_is_value(self) -> None:
        assert classify(_describe("name")).shape is Shape.VALUE

    def test_memoized_per_descriptor(self) -> None:
        first = classify(_describe("items"))
        second = classify(_describe("items"))
        assert first is second
