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
"""LoggingPort: where the logging interceptor gets its category loggers from."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from proxyfly.core.config import Config


@runtime_checkable
class LoggingPort(Protocol):
    """Source of category loggers for :class:`~proxyfly.logging.LoggingInterceptor`.

    A category is the dotted name a member logs under, by default
    ``module.Interface``. Loggers returned by :meth:`get_logger` must accept
    ``logger.<level>(event, **fields)`` for every level the interceptor
    options name.
    """

    def configure(self, config: Config) -> None:
        """Apply the ``proxyfly.logging`` section: output format and category levels."""
        ...

    def get_logger(self, category: str) -> Any:
        """Logger for *category*; repeated calls may return the same logger."""
        ...

    def set_level(self, category: str, level: str) -> None:
        """Minimum level emitted for *category* and the categories below it."""
        ...
