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
"""LoggingInterceptor: structured call logging for proxied interfaces.

Every intercepted call produces structlog events named ``method_call``::

    stage=START     when the call starts (debug)
    stage=RESULT    on success, with the extracted result (info)
    stage=DONE      on success without a logged result (info)
    stage=NEXT      for every stream element (debug)
    stage=COMPLETE  when a stream is exhausted (info)
    stage=ERROR     on failure, with ``exc_info`` (error)

Levels and stage names come from :class:`LoggingInterceptorOptions`.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, field_validator

from proxyfly.core.config import Config, config_properties
from proxyfly.intercept.asynchronous import AsyncInterceptor
from proxyfly.intercept.chain import InterceptorChain
from proxyfly.intercept.descriptor import CallContext, MethodDescriptor
from proxyfly.intercept.extractors import (
    ParameterRule,
    TypedRule,
    observed_type,
    parameter_rule,
    parameters_getter,
    required,
    result_rule,
    results_getter,
)
from proxyfly.intercept.filters import MemberFilter, MemberPredicate, matching, named, pointcut
from proxyfly.intercept.proxy import create_proxy
from proxyfly.intercept.shapes import ShapeFamily, classify
from proxyfly.intercept.stream import StreamInterceptor
from proxyfly.intercept.value import ValueInterceptor
from proxyfly.kernel.exceptions import InterceptorConfigurationError
from proxyfly.logging.port import LoggingPort
from proxyfly.logging.structlog_adapter import StructlogAdapter

T = TypeVar("T")

_LEVELS = ("debug", "info", "warning", "error", "critical")

LoggerFor = Callable[[MethodDescriptor], Any]
ParametersGetter = Callable[[MethodDescriptor, dict[str, Any]], Any]
ResultGetter = Callable[[MethodDescriptor, Any], Any]
ErrorPredicate = Callable[[MethodDescriptor, BaseException], bool]


@config_properties(prefix="proxyfly.interceptors.logging")
class LoggingInterceptorOptions(BaseModel):
    """Levels, stage names and interception switches of the logging interceptor."""

    model_config = ConfigDict(frozen=True)

    start_level: str = "debug"
    done_level: str = "info"
    next_level: str = "debug"
    error_level: str = "error"

    start_stage: str = "START"
    done_stage: str = "DONE"
    complete_stage: str = "COMPLETE"
    result_stage: str = "RESULT"
    next_stage: str = "NEXT"
    error_stage: str = "ERROR"

    unknown_type_name: str = "UnknownType"

    intercept_async: bool = True
    intercept_streams: bool = True
    intercept_properties: bool = True

    @field_validator("start_level", "done_level", "next_level", "error_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.lower()
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level '{value}', expected one of {_LEVELS}")
        return level


@dataclass
class LoggingInterceptorState:
    """Per-call logging state threaded from ``before`` to the terminal hook."""

    started: float
    logger: Any
    type_name: str
    parameters: dict[str, Any] | None
    get_result: Callable[[Any], Any]

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 2)


class LoggingInterceptor:
    """Hooks for every shape family, backed by structlog.

    Usually built with :class:`LoggingInterceptorBuilder`; the collaborators
    below are what the builder resolves.

    Args:
        options: Levels, stage names and switches.
        logger_for: Returns the logger used for a member.
        should_intercept: Member filter; memoized per member by the chain.
        get_parameters: ``(method, arguments) -> dict | None`` of logged parameters.
        get_result: ``(method, result) -> Any`` of logged result data, or ``None``.
        treat_error_as_complete: ``(method, error) -> bool``; such errors are
            logged as a normal completion. They are still raised to the caller.
    """

    def __init__(
        self,
        options: LoggingInterceptorOptions | None = None,
        logger_for: LoggerFor | None = None,
        should_intercept: Callable[[MethodDescriptor], bool] | None = None,
        get_parameters: ParametersGetter | None = None,
        get_result: ResultGetter | None = None,
        treat_error_as_complete: ErrorPredicate | None = None,
    ) -> None:
        self._options = options or LoggingInterceptorOptions()
        self._logger_for = logger_for or _category_logger(structlog.get_logger, {})
        self._should_intercept = should_intercept or (lambda method: True)
        self._get_parameters = get_parameters or (lambda method, arguments: None)
        self._get_result = get_result or (lambda method, result: None)
        self._treat_error_as_complete = treat_error_as_complete or (lambda method, error: False)

    @property
    def options(self) -> LoggingInterceptorOptions:
        return self._options

    def chain(self) -> InterceptorChain:
        """Stream and async units first (when enabled), the value unit last."""
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
        return bool(self._should_intercept(method))

    def before(self, call: CallContext) -> LoggingInterceptorState:
        method = call.method
        declaring = method.declaring_type
        state = LoggingInterceptorState(
            started=time.perf_counter(),
            logger=self._logger_for(method),
            type_name=declaring.__name__ if declaring is not None else self._options.unknown_type_name,
            parameters=self._get_parameters(method, call.arguments()),
            get_result=lambda result: self._get_result(method, result),
        )
        self._log(state, call, self._options.start_level, self._options.start_stage)
        return state

    def on_success(self, state: LoggingInterceptorState, call: CallContext, result: Any) -> None:
        data = state.get_result(result)
        if data is not None:
            self._log(
                state, call, self._options.done_level, self._options.result_stage,
                result=data, elapsed_ms=state.elapsed_ms(),
            )
        else:
            self._log(state, call, self._options.done_level, self._options.done_stage, elapsed_ms=state.elapsed_ms())

    def on_next(self, state: LoggingInterceptorState, call: CallContext, item: Any) -> None:
        data = state.get_result(item)
        extra = {"result": data} if data is not None else {}
        self._log(state, call, self._options.next_level, self._options.next_stage, elapsed_ms=state.elapsed_ms(), **extra)

    def on_complete(self, state: LoggingInterceptorState, call: CallContext) -> None:
        self._log(state, call, self._options.done_level, self._options.complete_stage, elapsed_ms=state.elapsed_ms())

    def on_error(self, state: LoggingInterceptorState, call: CallContext, error: BaseException) -> None:
        if self._treat_error_as_complete(call.method, error):
            stage = (
                self._options.complete_stage
                if classify(call.method).family is ShapeFamily.STREAM
                else self._options.done_stage
            )
            self._log(state, call, self._options.done_level, stage, elapsed_ms=state.elapsed_ms())
            return
        self._log(
            state, call, self._options.error_level, self._options.error_stage,
            elapsed_ms=state.elapsed_ms(), error_type=type(error).__name__, exc_info=error,
        )

    def _log(self, state: LoggingInterceptorState, call: CallContext, level: str, stage: str, **fields: Any) -> None:
        if state.parameters is not None:
            fields["parameters"] = state.parameters
        getattr(state.logger, level)(
            "method_call",
            type_name=state.type_name,
            method=call.method.name,
            stage=stage,
            **fields,
        )

class LoggingInterceptorBuilder:
    """Fluent configuration of a :class:`LoggingInterceptor`.

    Usage::

        interceptor = (
            LoggingInterceptorBuilder()
            .with_logger_category(UserRepository, "app.users")
            .exclude_named("health")
            .log_parameter("user_id", method_name="get_user")
            .log_result("user", method_name="get_user")
            .skip_exception(KeyError, method_name="get_user")
            .build()
        )
        repository = interceptor.intercept(UserRepository, SqlUserRepository())

    Without any logger configuration, each member logs to a structlog logger
    named after the module and qualified name of its declaring interface.
    """

    def __init__(self) -> None:
        self._built = False
        self._options = LoggingInterceptorOptions()
        self._logger: Any = None
        self._logger_factory: Callable[[str], Any] | None = None
        self._logger_for: LoggerFor | None = None
        self._categories: dict[type, str] = {}
        self._filter = MemberFilter()
        self._skip_predicates: list[ErrorPredicate] = []
        self._get_parameters: ParametersGetter | None = None
        self._parameter_rules: list[ParameterRule] = []
        self._get_result: ResultGetter | None = None
        self._result_rules: list[TypedRule] = []

    @classmethod
    def from_config(cls, config: Config, port: LoggingPort | None = None) -> LoggingInterceptorBuilder:
        """Builder configured from ``proxyfly.logging`` and ``proxyfly.interceptors.logging``.

        The logging port (a :class:`StructlogAdapter` by default) is
        configured from *config* and supplies the category loggers.
        """
        port = port or StructlogAdapter()
        port.configure(config)
        return cls().with_options(config.bind(LoggingInterceptorOptions)).with_logging_port(port)

    # -- loggers -------------------------------------------------------------

    def with_logger(self, logger: Any) -> LoggingInterceptorBuilder:
        """Use one logger for every member."""
        self._check_not_built()
        self._logger = required(logger, "logger")
        return self

    def with_logger_factory(self, factory: Callable[[str], Any]) -> LoggingInterceptorBuilder:
        """Create loggers by category name, e.g. ``structlog.get_logger``."""
        self._check_not_built()
        self._logger_factory = required(factory, "factory")
        return self

    def with_logging_port(self, port: LoggingPort) -> LoggingInterceptorBuilder:
        """Obtain category loggers from a :class:`LoggingPort`."""
        return self.with_logger_factory(required(port, "port").get_logger)

    def with_logger_for(self, logger_for: LoggerFor) -> LoggingInterceptorBuilder:
        """Pick the logger of each member with a custom function."""
        self._check_not_built()
        self._logger_for = required(logger_for, "logger_for")
        return self

    def with_logger_category(self, interface: type, category: str | type) -> LoggingInterceptorBuilder:
        """Log members declared by *interface* under *category*."""
        self._check_not_built()
        required(interface, "interface")
        required(category, "category")
        if isinstance(category, type):
            category = f"{category.__module__}.{category.__qualname__}"
        self._categories[interface] = category
        return self

    # -- options -------------------------------------------------------------

    def with_options(self, options: LoggingInterceptorOptions) -> LoggingInterceptorBuilder:
        self._check_not_built()
        self._options = required(options, "options")
        return self

    # -- member filters ------------------------------------------------------

    def include_if(self, predicate: MemberPredicate) -> LoggingInterceptorBuilder:
        """Only intercept members matching one of the include predicates."""
        self._check_not_built()
        self._filter.include(required(predicate, "predicate"))
        return self

    def include_named(self, name: str) -> LoggingInterceptorBuilder:
        return self.include_if(named(required(name, "name")))

    def include_matching(self, pattern: str | re.Pattern[str]) -> LoggingInterceptorBuilder:
        return self.include_if(matching(required(pattern, "pattern")))

    def include_pointcut(self, pattern: str) -> LoggingInterceptorBuilder:
        return self.include_if(pointcut(required(pattern, "pattern")))

    def exclude_if(self, predicate: MemberPredicate) -> LoggingInterceptorBuilder:
        """Intercept every member except those matching an exclude predicate."""
        self._check_not_built()
        self._filter.exclude(required(predicate, "predicate"))
        return self

    def exclude_named(self, name: str) -> LoggingInterceptorBuilder:
        return self.exclude_if(named(required(name, "name")))

    def exclude_matching(self, pattern: str | re.Pattern[str]) -> LoggingInterceptorBuilder:
        return self.exclude_if(matching(required(pattern, "pattern")))

    def exclude_pointcut(self, pattern: str) -> LoggingInterceptorBuilder:
        return self.exclude_if(pointcut(required(pattern, "pattern")))

    # -- skipped exceptions --------------------------------------------------

    def skip_exception_if(self, predicate: ErrorPredicate) -> LoggingInterceptorBuilder:
        """Log errors matching ``predicate(method, error)`` as a normal completion."""
        self._check_not_built()
        self._skip_predicates.append(required(predicate, "predicate"))
        return self

    def skip_exception(
        self,
        exception_type: type[BaseException],
        method_name: str | re.Pattern[str] | None = None,
        when: Callable[[BaseException], bool] | None = None,
    ) -> LoggingInterceptorBuilder:
        """Skip errors of *exception_type*, optionally only for some members.

        *method_name* is an exact member name or a compiled regular expression.
        """
        required(exception_type, "exception_type")

        def predicate(method: MethodDescriptor, error: BaseException) -> bool:
            if not isinstance(error, exception_type):
                return False
            if isinstance(method_name, re.Pattern):
                if method_name.search(method.name) is None:
                    return False
            elif method_name is not None and method.name != method_name:
                return False
            return when is None or bool(when(error))

        return self.skip_exception_if(predicate)

    # -- parameters ----------------------------------------------------------

    def with_parameters(self, get_parameters: ParametersGetter) -> LoggingInterceptorBuilder:
        """Extract logged parameters with ``get_parameters(method, arguments)``."""
        self._check_not_built()
        self._get_parameters = required(get_parameters, "get_parameters")
        return self

    def log_parameter(
        self,
        name: str | None = None,
        extract: Callable[[Any], Any] | None = None,
        *,
        method_name: str | None = None,
        annotation: Any = None,
        output_name: str | None = None,
        when: Callable[[MethodDescriptor, Any, str], bool] | None = None,
    ) -> LoggingInterceptorBuilder:
        """Log a parameter, selected by name, member name and/or annotation.

        Without *extract* the raw value is logged under *output_name* (or the
        parameter name). An extract result that is a mapping is merged into
        the logged parameters; anything else is logged under the parameter
        name. *when* replaces the selection by a custom
        ``(method, annotation, parameter_name)`` predicate.
        """
        self._check_not_built()
        self._parameter_rules.append(
            parameter_rule(
                name, extract, method_name=method_name, annotation=annotation, output_name=output_name, when=when
            )
        )
        return self

    # -- results -------------------------------------------------------------

    def with_result(self, get_result: ResultGetter) -> LoggingInterceptorBuilder:
        """Extract logged result data with ``get_result(method, result)``."""
        self._check_not_built()
        self._get_result = required(get_result, "get_result")
        return self

    def log_result(
        self,
        output_name: str | None = None,
        extract: Callable[[Any], Any] | None = None,
        *,
        method_name: str | None = None,
        annotation: Any = None,
        when: Callable[[MethodDescriptor, Any], bool] | None = None,
    ) -> LoggingInterceptorBuilder:
        """Log results (or stream elements), selected by member name and/or type.

        The result type is the awaited type for async members and the element
        type for streams. Without *extract* the raw result is logged under
        *output_name*, or ``result`` when none is given.
        """
        self._check_not_built()
        self._result_rules.append(
            result_rule(
                output_name, extract, method_name=method_name, annotation=annotation, when=when, default_key="result"
            )
        )
        return self

    # -- build ---------------------------------------------------------------

    def build(self) -> LoggingInterceptor:
        """Validate the configuration and create the interceptor (once)."""
        self._check_not_built()
        interceptor = LoggingInterceptor(
            options=self._options,
            logger_for=self._resolve_logger_for(),
            should_intercept=self._filter.copy(),
            get_parameters=self._resolve_get_parameters(),
            get_result=self._resolve_get_result(),
            treat_error_as_complete=self._resolve_treat_error(),
        )
        self._built = True
        return interceptor

    def _check_not_built(self) -> None:
        if self._built:
            raise InterceptorConfigurationError("LoggingInterceptor is already built")

    def _resolve_logger_for(self) -> LoggerFor:
        if self._logger is not None:
            if self._logger_factory is not None or self._logger_for is not None or self._categories:
                raise InterceptorConfigurationError(
                    "When a logger is set, no other logger configuration may be provided"
                )
            logger = self._logger
            return lambda method: logger
        if self._logger_for is not None:
            if self._logger_factory is not None or self._categories:
                raise InterceptorConfigurationError(
                    "When a logger function is set, no other logger configuration may be provided"
                )
            return self._logger_for
        return _category_logger(self._logger_factory or structlog.get_logger, dict(self._categories))

    def _resolve_get_parameters(self) -> ParametersGetter | None:
        if self._get_parameters is not None:
            if self._parameter_rules:
                raise InterceptorConfigurationError("with_parameters cannot be combined with log_parameter")
            return self._get_parameters
        if not self._parameter_rules:
            return None
        return parameters_getter(self._parameter_rules)

    def _resolve_get_result(self) -> ResultGetter | None:
        if self._get_result is not None:
            if self._result_rules:
                raise InterceptorConfigurationError("with_result cannot be combined with log_result")
            return self._get_result
        if not self._result_rules:
            return None

        options = self._options
        return results_getter(
            self._result_rules,
            lambda method: observed_type(
                method, intercept_async=options.intercept_async, intercept_streams=options.intercept_streams
            ),
            "result",
        )

    def _resolve_treat_error(self) -> ErrorPredicate | None:
        if not self._skip_predicates:
            return None
        predicates = tuple(self._skip_predicates)
        return lambda method, error: any(predicate(method, error) for predicate in predicates)


def _category_logger(factory: Callable[[str], Any], categories: dict[type, str]) -> LoggerFor:
    loggers: dict[str, Any] = {}

    def logger_for(method: MethodDescriptor) -> Any:
        owner = method.declaring_type
        category = categories.get(owner) or f"{owner.__module__}.{owner.__qualname__}"
        logger = loggers.get(category)
        if logger is None:
            logger = loggers[category] = factory(category)
        return logger

    return logger_for
