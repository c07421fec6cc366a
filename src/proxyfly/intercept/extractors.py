"""Selection rules turning call parameters, results and errors into key-value data.

Both interceptor builders collect rules here: a rule pairs a predicate over
the static member shape with an ``extract`` function applied to the runtime
value. Which rules apply to a member is decided once per member and reused.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from proxyfly.intercept.descriptor import MethodDescriptor
from proxyfly.intercept.shapes import ShapeFamily, classify
from proxyfly.kernel.exceptions import InterceptorConfigurationError

Extract = Callable[[Any], Any]
ParameterPredicate = Callable[[MethodDescriptor, Any, str], bool]
TypePredicate = Callable[[MethodDescriptor, Any], bool]


@dataclass(frozen=True)
class ParameterRule:
    predicate: ParameterPredicate
    extract: Extract


@dataclass(frozen=True)
class TypedRule:
    """Rule matched against a member and a type: result type or error type."""

    predicate: TypePredicate
    extract: Extract


def parameter_rule(
    name: str | None,
    extract: Extract | None,
    *,
    method_name: str | None,
    annotation: Any,
    output_name: str | None,
    when: ParameterPredicate | None,
) -> ParameterRule:
    if when is None and name is None and method_name is None and annotation is None:
        raise InterceptorConfigurationError("A parameter rule needs a name, method_name, annotation or predicate")

    def predicate(method: MethodDescriptor, param_annotation: Any, param_name: str) -> bool:
        if when is not None:
            return bool(when(method, param_annotation, param_name))
        return (
            (name is None or param_name == name)
            and (method_name is None or method.name == method_name)
            and (annotation is None or param_annotation == annotation)
        )

    if extract is None:
        extract = extract_as(output_name or name)
    return ParameterRule(predicate, extract)


def result_rule(
    output_name: str | None,
    extract: Extract | None,
    *,
    method_name: str | None,
    annotation: Any,
    when: TypePredicate | None,
    default_key: str,
) -> TypedRule:
    def predicate(method: MethodDescriptor, result_type: Any) -> bool:
        if when is not None:
            return bool(when(method, result_type))
        return (method_name is None or method.name == method_name) and (
            annotation is None or result_type == annotation
        )

    return TypedRule(predicate, extract or extract_as(output_name or default_key))


def error_rule(
    output_name: str | None,
    extract: Extract | None,
    *,
    method_name: str | None,
    exception_type: type[BaseException] | None,
    when: TypePredicate | None,
    default_key: str,
) -> TypedRule:
    def predicate(method: MethodDescriptor, error_type: Any) -> bool:
        if when is not None:
            return bool(when(method, error_type))
        return (method_name is None or method.name == method_name) and (
            exception_type is None or issubclass(error_type, exception_type)
        )

    return TypedRule(predicate, extract or extract_as(output_name or default_key))


def extract_as(key: str | None) -> Extract:
    """Extractor storing the value under *key*; without a key the raw value is kept."""

    def extract(value: Any) -> Any:
        return {key: value} if key is not None else value

    return extract


def parameters_getter(rules: list[ParameterRule]) -> Callable[[MethodDescriptor, dict[str, Any]], dict[str, Any] | None]:
    """Combine parameter rules into ``(method, arguments) -> data | None``."""
    selected_rules = tuple(rules)
    plans: dict[MethodDescriptor, tuple[tuple[str, tuple[Extract, ...]], ...]] = {}

    def plan_for(method: MethodDescriptor) -> tuple[tuple[str, tuple[Extract, ...]], ...]:
        plan = plans.get(method)
        if plan is None:
            entries = []
            for param_name, param_annotation in method.parameters:
                chosen = tuple(r.extract for r in selected_rules if r.predicate(method, param_annotation, param_name))
                if chosen:
                    entries.append((param_name, chosen))
            plan = plans[method] = tuple(entries)
        return plan

    def get_parameters(method: MethodDescriptor, arguments: dict[str, Any]) -> dict[str, Any] | None:
        data: dict[str, Any] = {}
        for param_name, chosen in plan_for(method):
            if param_name not in arguments:
                continue
            for extract in chosen:
                merge(data, param_name, extract(arguments[param_name]))
        return data or None

    return get_parameters


def results_getter(
    rules: list[TypedRule],
    result_type: Callable[[MethodDescriptor], Any],
    key: str,
) -> Callable[[MethodDescriptor, Any], dict[str, Any] | None]:
    """Combine result rules into ``(method, result) -> data | None``.

    Rules are matched once per member against ``result_type(method)``.
    """
    selected_rules = tuple(rules)
    plans: dict[MethodDescriptor, tuple[Extract, ...]] = {}

    def get_result(method: MethodDescriptor, result: Any) -> dict[str, Any] | None:
        chosen = plans.get(method)
        if chosen is None:
            returned = result_type(method)
            chosen = plans[method] = tuple(r.extract for r in selected_rules if r.predicate(method, returned))
        data: dict[str, Any] = {}
        for extract in chosen:
            merge(data, key, extract(result))
        return data or None

    return get_result


def errors_getter(rules: list[TypedRule], key: str) -> Callable[[MethodDescriptor, BaseException], dict[str, Any] | None]:
    """Combine error rules into ``(method, error) -> data | None``, planned per member and error type."""
    selected_rules = tuple(rules)
    plans: dict[tuple[MethodDescriptor, type], tuple[Extract, ...]] = {}

    def get_error(method: MethodDescriptor, error: BaseException) -> dict[str, Any] | None:
        plan_key = (method, type(error))
        chosen = plans.get(plan_key)
        if chosen is None:
            chosen = plans[plan_key] = tuple(r.extract for r in selected_rules if r.predicate(method, type(error)))
        data: dict[str, Any] = {}
        for extract in chosen:
            merge(data, key, extract(error))
        return data or None

    return get_error


def observed_type(method: MethodDescriptor, *, intercept_async: bool, intercept_streams: bool) -> Any:
    """Type of the values a consumer observes for *method*.

    The awaited type for intercepted async members, the element type for
    intercepted streams, otherwise the declared return type.
    """
    classification = classify(method)
    if classification.family is ShapeFamily.STREAM and intercept_streams:
        return classification.inner_type
    if classification.family is ShapeFamily.ASYNC and intercept_async:
        return classification.inner_type
    return method.return_type


def merge(into: dict[str, Any], key: str, data: Any) -> None:
    """Spread mappings into *into*; store anything else under *key*."""
    if data is None:
        return
    if isinstance(data, Mapping):
        into.update({str(k): v for k, v in data.items()})
    else:
        into[key] = data


def required(value: Any, name: str) -> Any:
    if value is None:
        raise InterceptorConfigurationError(f"'{name}' must not be None")
    return value
