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
"""Method interception: shapes, interceptor units, chains and dynamic proxies."""

from proxyfly.intercept.asynchronous import AsyncInterceptor
from proxyfly.intercept.chain import InterceptorChain
from proxyfly.intercept.descriptor import CallContext, MemberKind, MethodDescriptor
from proxyfly.intercept.filters import MemberFilter
from proxyfly.intercept.invocation import invoke, normalize_exception
from proxyfly.intercept.observable import CallbackObserver, Disposable, Observable, Observer
from proxyfly.intercept.pointcut import matches_pointcut
from proxyfly.intercept.proxy import ProxyFactory, create_proxy, proxy_chain, proxy_target
from proxyfly.intercept.shapes import (
    NO_VALUE,
    Shape,
    ShapeClassification,
    ShapeFamily,
    classify,
    classify_return_type,
)
from proxyfly.intercept.stream import InterceptedObservable, StreamInterceptor
from proxyfly.intercept.units import InterceptorUnit
from proxyfly.intercept.value import ValueInterceptor

__all__ = [
    "NO_VALUE",
    "AsyncInterceptor",
    "CallContext",
    "CallbackObserver",
    "Disposable",
    "InterceptedObservable",
    "InterceptorChain",
    "InterceptorUnit",
    "MemberFilter",
    "MemberKind",
    "MethodDescriptor",
    "Observable",
    "Observer",
    "ProxyFactory",
    "Shape",
    "ShapeClassification",
    "ShapeFamily",
    "StreamInterceptor",
    "ValueInterceptor",
    "classify",
    "classify_return_type",
    "create_proxy",
    "invoke",
    "matches_pointcut",
    "normalize_exception",
    "proxy_chain",
    "proxy_target",
]
