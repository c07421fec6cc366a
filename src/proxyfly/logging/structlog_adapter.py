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
"""StructlogAdapter: structlog-backed category loggers for the logging interceptor."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from proxyfly.core.config import Config

FORMATS = ("console", "json")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class StructlogAdapter:
    """:class:`~proxyfly.logging.LoggingPort` backed by structlog over stdlib logging.

    Each category gets one cached logger. Category levels are stdlib logger
    levels, so a level set for ``billing`` also applies to
    ``billing.PaymentGateway``. Events below a category's level are dropped
    by ``filter_by_level`` before rendering. Exceptions passed as
    ``exc_info`` are rendered as tracebacks on the console, or as
    structured ``exception`` entries in JSON.

    Recognized keys::

        proxyfly:
          logging:
            format: console        # or json
            level:
              root: INFO
              billing: DEBUG
    """

    def __init__(self) -> None:
        self._root_level = logging.INFO
        self._format = "console"
        self._category_levels: dict[str, int] = {}
        self._loggers: dict[str, Any] = {}

    @property
    def format(self) -> str:
        return self._format

    @property
    def root_level(self) -> int:
        return self._root_level

    @property
    def category_levels(self) -> dict[str, int]:
        return dict(self._category_levels)

    def configure(self, config: Config) -> None:
        levels = config.get_section("proxyfly.logging.level")
        root_level = _level(levels.pop("root", "INFO"))
        output_format = str(config.get("proxyfly.logging.format", "console")).lower()
        if output_format not in FORMATS:
            raise ValueError(f"Unknown log format '{output_format}', expected one of {FORMATS}")

        self._root_level = root_level
        self._format = output_format
        structlog.configure(
            processors=self._processors(),
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=root_level, force=True)
        self._loggers.clear()
        for category, level in levels.items():
            self.set_level(category, level)

    def get_logger(self, category: str) -> Any:
        logger = self._loggers.get(category)
        if logger is None:
            logger = self._loggers[category] = structlog.get_logger(category)
        return logger

    def set_level(self, category: str, level: str) -> None:
        number = _level(level)
        self._category_levels[category] = number
        logging.getLogger(category).setLevel(number)

    def _processors(self) -> list[structlog.types.Processor]:
        processors: list[structlog.types.Processor] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]
        if self._format == "json":
            processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        else:
            processors.append(structlog.dev.ConsoleRenderer())
        return processors


def _level(value: Any) -> int:
    number = _LEVELS.get(str(value).upper())
    if number is None:
        raise ValueError(f"Unknown log level '{value}', expected one of {tuple(_LEVELS)}")
    return number
