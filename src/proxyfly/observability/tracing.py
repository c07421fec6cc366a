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
"""Distributed tracing of intercepted calls with OpenTelemetry.

:class:`TracingInterceptor` wraps every intercepted call in a span that is
current while the target runs, so spans started by the target become its
children. :class:`TracingInterceptorBuilder` assembles one from member
filters and tag rules.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, TypeVar

from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, field_validator

from proxyfly.core.config import Config, config_properties
from proxyfly.intercept.asynchronous import AsyncInterceptor
from proxyfly.intercept.chain import InterceptorChain
from proxyfly.intercept.descriptor import CallContext, MethodDescriptor
from proxyfly.intercept.extractors import (
    ParameterRule,
    TypedRule,
    error_rule,
    errors_getter,
    merge,
    observed_type,
    parameter_rule,
    parameters_getter,
    required,
    result_rule,
    results_getter,
)
from proxyfly.intercept.filters import MemberFilter, MemberPredicate, matching, named, pointcut
from proxyfly.intercept.proxy import create_proxy
from proxyfly.intercept.stream import StreamInterceptor
from proxyfly.intercept.value import ValueInterceptor
from proxyfly.kernel.exceptions import InterceptorConfigurationError

T = TypeVar("T")

TRACER_NAME = "proxyfly"

SUCCESS_ATTRIBUTE = "proxyfly.success"
ITEMS_ATTRIBUTE = "proxyfly.items"

Tags = Mapping[str, Any] | None
TargetTags = Callable[[Any], Tags]
ParameterTags = Callable[[MethodDescriptor, dict[str, Any]], Tags]
ResultTags = Callable[[MethodDescriptor, Any], Tags]
ErrorTags = Callable[[MethodDescriptor, BaseException], Tags]


@config_properties(prefix="proxyfly.interceptors.tracing")
class TracingInterceptorOptions(BaseModel):
    """Span naming, span kind and interception switches of the tracing interceptor."""

    model_config = ConfigDict(frozen=True)

    span_name_format: str = "{type_name}.{method_name}"
    unknown_type_name: str = "UnknownType"
    span_kind: str = "internal"
    intercept_async: bool = True
    intercept_streams: bool = True
    intercept_properties: bool = True
    record_exceptions: bool = True

    @field_validator("span_kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        kind = value.upper()
        if kind not in trace.SpanKind.__members__:
            raise ValueError(f"Unknown span kind '{value}', expected one of {list(trace.SpanKind.__members__)}")
        return kind.lower()


@dataclass
class TracingInterceptorState:
    span: trace.Span
    get_result_tags: Callable[[Any], Tags]
    get_error_tags: Callable[[BaseException], Tags]
    items: int = 0


class TracingInterceptor:
    """Wrap every intercepted call in an OpenTelemetry span.

    The span starts when the call starts and ends at its terminal event:
    the return value, the awaited result, stream exhaustion or the first
    failure. It is the current span only while the target does work (the
    real call, awaiting its result, each stream pull), always within the
    task doing that work, so it never stays current after the proxy
    returns or leaks into unrelated concurrent calls.

    Args:
        tracer: Tracer to start spans with; defaults to the global
            ``proxyfly`` tracer.
        options: Span naming, span kind and switches.
        type_name: Type name used in span names instead of the declaring
            interface name.
        common_tags: Tags added to every span.
        should_intercept: Member filter; memoized per member by the chain.
        target_tags: ``target -> tags`` added when the span starts.
        parameter_tags: ``(method, arguments) -> tags`` added when the span starts.
        result_tags: ``(method, result) -> tags`` added on success.
        error_tags: ``(method, error) -> tags`` added on failure.
    """

    def __init__(
        self,
        tracer: trace.Tracer | None = None,
        options: TracingInterceptorOptions | None = None,
        *,
        type_name: str | None = None,
        common_tags: Tags = None,
        should_intercept: Callable[[MethodDescriptor], bool] | None = None,
        target_tags: TargetTags | None = None,
        parameter_tags: ParameterTags | None = None,
        result_tags: ResultTags | None = None,
        error_tags: ErrorTags | None = None,
    ) -> None:
        self._tracer = tracer or trace.get_tracer(TRACER_NAME)
        self._options = options or TracingInterceptorOptions()
        self._span_kind = trace.SpanKind[self._options.span_kind.upper()]
        self._type_name = type_name
        self._common_tags = dict(common_tags or {})
        self._should_intercept = should_intercept
        self._target_tags = target_tags
        self._parameter_tags = parameter_tags
        self._result_tags = result_tags
        self._error_tags = error_tags

    @property
    def options(self) -> TracingInterceptorOptions:
        return self._options

    def chain(self) -> InterceptorChain:
        units: list[Any] = []
        if self._options.intercept_streams:
            units.append(StreamInterceptor.of(self))
        if self._options.intercept_async:
            units.append(AsyncInterceptor.of(self))
        units.append(ValueInterceptor.of(self))
        return InterceptorChain(units)

    def intercept(self, interface: type[T], target: Any) -> T:
        return create_proxy(interface, target, self.chain())

    # -- hooks ---------------------------------------------------------------

    def admit(self, target: Any, method: MethodDescriptor, args: tuple) -> bool:
        if method.is_property and not self._options.intercept_properties:
            return False
        if self._should_intercept is None:
            return True
        return bool(self._should_intercept(method))

    def before(self, call: CallContext) -> TracingInterceptorState:
        method = call.method
        declaring = method.declaring_type
        type_name = self._type_name or (declaring.__name__ if declaring is not None else self._options.unknown_type_name)
        namespace = f"{declaring.__module__}.{declaring.__qualname__}" if declaring is not None else type_name

        span = self._tracer.start_span(
            self._options.span_name_format.format(type_name=type_name, method_name=method.name),
            kind=self._span_kind,
            attributes={"code.namespace": namespace, "code.function": method.name},
        )
        _set_tags(span, self._common_tags)
        if self._target_tags is not None:
            _set_tags(span, self._target_tags(call.target))
        if self._parameter_tags is not None:
            _set_tags(span, self._parameter_tags(method, call.arguments()))

        result_tags = self._result_tags
        error_tags = self._error_tags
        return TracingInterceptorState(
            span=span,
            get_result_tags=(lambda result: result_tags(method, result)) if result_tags else (lambda result: None),
            get_error_tags=(lambda error: error_tags(method, error)) if error_tags else (lambda error: None),
        )

    def scope(self, state: TracingInterceptorState, call: CallContext) -> AbstractContextManager[Any]:
        # Ending and error reporting belong to the terminal hooks.
        return trace.use_span(state.span, end_on_exit=False, record_exception=False, set_status_on_exception=False)

    def on_success(self, state: TracingInterceptorState, call: CallContext, result: Any) -> None:
        try:
            _set_tags(state.span, state.get_result_tags(result))
            state.span.set_attribute(SUCCESS_ATTRIBUTE, True)
            state.span.set_status(trace.Status(trace.StatusCode.OK))
        finally:
            state.span.end()

    def on_next(self, state: TracingInterceptorState, call: CallContext, item: Any) -> None:
        state.items += 1

    def on_complete(self, state: TracingInterceptorState, call: CallContext) -> None:
        try:
            state.span.set_attribute(ITEMS_ATTRIBUTE, state.items)
            state.span.set_attribute(SUCCESS_ATTRIBUTE, True)
            state.span.set_status(trace.Status(trace.StatusCode.OK))
        finally:
            state.span.end()

    def on_error(self, state: TracingInterceptorState, call: CallContext, error: BaseException) -> None:
        span = state.span
        try:
            if state.items:
                span.set_attribute(ITEMS_ATTRIBUTE, state.items)
            span.set_attribute(SUCCESS_ATTRIBUTE, False)
            _set_tags(span, state.get_error_tags(error))
            if self._options.record_exceptions:
                span.record_exception(error)
            span.set_status(trace.Status(trace.StatusCode.ERROR, f"{type(error).__name__}: {error}"))
        finally:
            span.end()


@dataclass(frozen=True)
class TargetRule:
    predicate: Callable[[type], bool]
    extract: Callable[[Any], Any]


class TracingInterceptorBuilder:
    """Fluent configuration of a :class:`TracingInterceptor`.

    Usage::

        interceptor = (
            TracingInterceptorBuilder()
            .with_tracer(provider.get_tracer("orders"))
            .with_span_kind("client")
            .exclude_named("health")
            .tag_with("peer.service", "orders-db")
            .tag_parameter("order_id", output_name="order.id")
            .tag_result("order.status", lambda order: order.status, method_name="get_order")
            .tag_error("order.error", lambda error: error.code, exception_type=OrderError)
            .build()
        )
        repository = interceptor.intercept(OrderRepository, SqlOrderRepository())

    Each tag source is either one function (``with_*_tags``) or a list of
    rules (``tag_*``); using both for the same source is a configuration
    error. Rules are matched once per member (per target type for target
    rules). A rule's extract result that is a mapping is spread into tags;
    anything else is stored under the rule's output name.
    """

    def __init__(self) -> None:
        self._built = False
        self._tracer: trace.Tracer | None = None
        self._options = TracingInterceptorOptions()
        self._overrides: dict[str, Any] = {}
        self._type_name: str | None = None
        self._filter = MemberFilter()
        self._common_tags: dict[str, Any] = {}
        self._target_tags: TargetTags | None = None
        self._target_rules: list[TargetRule] = []
        self._parameter_tags: ParameterTags | None = None
        self._parameter_rules: list[ParameterRule] = []
        self._result_tags: ResultTags | None = None
        self._result_rules: list[TypedRule] = []
        self._error_tags: ErrorTags | None = None
        self._error_rules: list[TypedRule] = []

    @classmethod
    def from_config(cls, config: Config) -> TracingInterceptorBuilder:
        """Builder with options bound from ``proxyfly.interceptors.tracing``."""
        return cls().with_options(config.bind(TracingInterceptorOptions))

    # -- tracer and naming ---------------------------------------------------

    def with_tracer(self, tracer: trace.Tracer) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._tracer = required(tracer, "tracer")
        return self

    def with_options(self, options: TracingInterceptorOptions) -> TracingInterceptorBuilder:
        """Replace the options; switches set on the builder still apply on top."""
        self._check_not_built()
        self._options = required(options, "options")
        return self

    def with_span_kind(self, kind: trace.SpanKind | str) -> TracingInterceptorBuilder:
        self._check_not_built()
        required(kind, "kind")
        if isinstance(kind, trace.SpanKind):
            kind = kind.name
        if kind.upper() not in trace.SpanKind.__members__:
            raise InterceptorConfigurationError(f"Unknown span kind '{kind}'")
        self._overrides["span_kind"] = kind.lower()
        return self

    def with_type_name(self, type_name: str) -> TracingInterceptorBuilder:
        """Use *type_name* in span names instead of the declaring interface name."""
        self._check_not_built()
        self._type_name = required(type_name, "type_name")
        return self

    def intercept_async(self, enabled: bool = True) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._overrides["intercept_async"] = enabled
        return self

    def intercept_streams(self, enabled: bool = True) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._overrides["intercept_streams"] = enabled
        return self

    def intercept_properties(self, enabled: bool = True) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._overrides["intercept_properties"] = enabled
        return self

    # -- member filters ------------------------------------------------------

    def include_if(self, predicate: MemberPredicate) -> TracingInterceptorBuilder:
        """Only trace members matching one of the include predicates."""
        self._check_not_built()
        self._filter.include(required(predicate, "predicate"))
        return self

    def include_named(self, name: str) -> TracingInterceptorBuilder:
        return self.include_if(named(required(name, "name")))

    def include_matching(self, pattern: str | re.Pattern[str]) -> TracingInterceptorBuilder:
        return self.include_if(matching(required(pattern, "pattern")))

    def include_pointcut(self, pattern: str) -> TracingInterceptorBuilder:
        return self.include_if(pointcut(required(pattern, "pattern")))

    def exclude_if(self, predicate: MemberPredicate) -> TracingInterceptorBuilder:
        """Trace every member except those matching an exclude predicate."""
        self._check_not_built()
        self._filter.exclude(required(predicate, "predicate"))
        return self

    def exclude_named(self, name: str) -> TracingInterceptorBuilder:
        return self.exclude_if(named(required(name, "name")))

    def exclude_matching(self, pattern: str | re.Pattern[str]) -> TracingInterceptorBuilder:
        return self.exclude_if(matching(required(pattern, "pattern")))

    def exclude_pointcut(self, pattern: str) -> TracingInterceptorBuilder:
        return self.exclude_if(pointcut(required(pattern, "pattern")))

    # -- tags ----------------------------------------------------------------

    def tag_with(self, name: str, value: Any) -> TracingInterceptorBuilder:
        """Add a fixed tag to every span."""
        self._check_not_built()
        self._common_tags[required(name, "name")] = value
        return self

    def with_target_tags(self, target_tags: TargetTags) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._target_tags = required(target_tags, "target_tags")
        return self

    def tag_target(
        self,
        extract: Callable[[Any], Any],
        *,
        target_type: type | None = None,
        when: Callable[[type], bool] | None = None,
    ) -> TracingInterceptorBuilder:
        """Tag spans from the target, optionally only for targets of *target_type*.

        *when* replaces the type check by a custom predicate over the
        target's class.
        """
        self._check_not_built()
        required(extract, "extract")
        if when is None:
            when = (lambda actual: issubclass(actual, target_type)) if target_type is not None else (lambda actual: True)
        self._target_rules.append(TargetRule(when, extract))
        return self

    def with_parameter_tags(self, parameter_tags: ParameterTags) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._parameter_tags = required(parameter_tags, "parameter_tags")
        return self

    def tag_parameter(
        self,
        name: str | None = None,
        extract: Callable[[Any], Any] | None = None,
        *,
        method_name: str | None = None,
        annotation: Any = None,
        output_name: str | None = None,
        when: Callable[[MethodDescriptor, Any, str], bool] | None = None,
    ) -> TracingInterceptorBuilder:
        """Tag a parameter, selected by name, member name and/or annotation."""
        self._check_not_built()
        self._parameter_rules.append(
            parameter_rule(
                name, extract, method_name=method_name, annotation=annotation, output_name=output_name, when=when
            )
        )
        return self

    def with_result_tags(self, result_tags: ResultTags) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._result_tags = required(result_tags, "result_tags")
        return self

    def tag_result(
        self,
        output_name: str | None = None,
        extract: Callable[[Any], Any] | None = None,
        *,
        method_name: str | None = None,
        annotation: Any = None,
        when: Callable[[MethodDescriptor, Any], bool] | None = None,
    ) -> TracingInterceptorBuilder:
        """Tag successful results, selected by member name and/or result type.

        The result type of an async member is its awaited type.
        """
        self._check_not_built()
        self._result_rules.append(
            result_rule(
                output_name, extract, method_name=method_name, annotation=annotation, when=when, default_key="result"
            )
        )
        return self

    def with_error_tags(self, error_tags: ErrorTags) -> TracingInterceptorBuilder:
        self._check_not_built()
        self._error_tags = required(error_tags, "error_tags")
        return self

    def tag_error(
        self,
        output_name: str | None = None,
        extract: Callable[[Any], Any] | None = None,
        *,
        method_name: str | None = None,
        exception_type: type[BaseException] | None = None,
        when: Callable[[MethodDescriptor, Any], bool] | None = None,
    ) -> TracingInterceptorBuilder:
        """Tag failures, selected by member name and/or exception type (subclasses included)."""
        self._check_not_built()
        self._error_rules.append(
            error_rule(
                output_name,
                extract,
                method_name=method_name,
                exception_type=exception_type,
                when=when,
                default_key="error",
            )
        )
        return self

    # -- build ---------------------------------------------------------------

    def build(self) -> TracingInterceptor:
        """Validate the configuration and create the interceptor (once)."""
        self._check_not_built()
        options = self._resolve_options()
        interceptor = TracingInterceptor(
            self._tracer,
            options,
            type_name=self._type_name,
            common_tags=dict(self._common_tags),
            should_intercept=self._filter.copy(),
            target_tags=self._resolve_target_tags(),
            parameter_tags=self._resolve_parameter_tags(),
            result_tags=self._resolve_result_tags(options),
            error_tags=self._resolve_error_tags(),
        )
        self._built = True
        return interceptor

    def _check_not_built(self) -> None:
        if self._built:
            raise InterceptorConfigurationError("TracingInterceptor is already built")

    def _resolve_options(self) -> TracingInterceptorOptions:
        if not self._overrides:
            return self._options
        return TracingInterceptorOptions(**{**self._options.model_dump(), **self._overrides})

    def _resolve_target_tags(self) -> TargetTags | None:
        if self._target_tags is not None:
            if self._target_rules:
                raise InterceptorConfigurationError("with_target_tags cannot be combined with tag_target")
            return self._target_tags
        if not self._target_rules:
            return None
        return _targets_getter(self._target_rules)

    def _resolve_parameter_tags(self) -> ParameterTags | None:
        if self._parameter_tags is not None:
            if self._parameter_rules:
                raise InterceptorConfigurationError("with_parameter_tags cannot be combined with tag_parameter")
            return self._parameter_tags
        if not self._parameter_rules:
            return None
        return parameters_getter(self._parameter_rules)

    def _resolve_result_tags(self, options: TracingInterceptorOptions) -> ResultTags | None:
        if self._result_tags is not None:
            if self._result_rules:
                raise InterceptorConfigurationError("with_result_tags cannot be combined with tag_result")
            return self._result_tags
        if not self._result_rules:
            return None
        return results_getter(
            self._result_rules,
            lambda method: observed_type(
                method, intercept_async=options.intercept_async, intercept_streams=options.intercept_streams
            ),
            "result",
        )

    def _resolve_error_tags(self) -> ErrorTags | None:
        if self._error_tags is not None:
            if self._error_rules:
                raise InterceptorConfigurationError("with_error_tags cannot be combined with tag_error")
            return self._error_tags
        if not self._error_rules:
            return None
        return errors_getter(self._error_rules, "error")


def _targets_getter(rules: list[TargetRule]) -> TargetTags:
    selected_rules = tuple(rules)
    plans: dict[type, tuple[Callable[[Any], Any], ...]] = {}

    def get_target_tags(target: Any) -> Tags:
        target_type = type(target)
        chosen = plans.get(target_type)
        if chosen is None:
            chosen = plans[target_type] = tuple(r.extract for r in selected_rules if r.predicate(target_type))
        data: dict[str, Any] = {}
        for extract in chosen:
            merge(data, "target", extract(target))
        return data or None

    return get_target_tags


def _set_tags(span: trace.Span, tags: Tags) -> None:
    if not tags:
        return
    for key, value in tags.items():
        if value is None:
            continue
        span.set_attribute(str(key), _attribute_value(value))


def _attribute_value(value: Any) -> Any:
    if isinstance(value, (bool, str, int, float)):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, (bool, str, int, float)) for v in value):
        return list(value)
    return str(value)
