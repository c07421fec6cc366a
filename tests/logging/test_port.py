"""Tests for plugging a LoggingPort into the logging interceptor."""

from typing import Any

from proxyfly.core.config import Config
from proxyfly.logging import LoggingInterceptorBuilder, LoggingPort


class Ledger:
    def post(self, amount: int) -> int: ...


class MemoryLedger:
    def post(self, amount: int) -> int:
        return amount


class RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def debug(self, event: str, **fields: Any) -> None:
        self.events.append(("debug", fields))

    def info(self, event: str, **fields: Any) -> None:
        self.events.append(("info", fields))


class RecordingPort:
    def __init__(self) -> None:
        self.configured: list[Config] = []
        self.loggers: dict[str, RecordingLogger] = {}

    def configure(self, config: Config) -> None:
        self.configured.append(config)

    def get_logger(self, category: str) -> RecordingLogger:
        return self.loggers.setdefault(category, RecordingLogger())

    def set_level(self, category: str, level: str) -> None:
        pass


class TestLoggingPortProtocol:
    def test_conforming_class_is_instance(self):
        assert isinstance(RecordingPort(), LoggingPort)

    def test_non_conforming_class_is_not_instance(self):
        class Incomplete:
            def get_logger(self, category: str) -> Any:
                pass

        assert not isinstance(Incomplete(), LoggingPort)


class TestPortInBuilder:
    def test_categories_come_from_port(self):
        port = RecordingPort()
        ledger = LoggingInterceptorBuilder().with_logging_port(port).build().intercept(Ledger, MemoryLedger())

        ledger.post(5)

        assert list(port.loggers) == [f"{__name__}.Ledger"]
        assert [level for level, _ in port.loggers[f"{__name__}.Ledger"].events] == ["debug", "info"]

    def test_category_override_applies_to_port(self):
        port = RecordingPort()
        interceptor = (
            LoggingInterceptorBuilder().with_logging_port(port).with_logger_category(Ledger, "accounting").build()
        )
        interceptor.intercept(Ledger, MemoryLedger()).post(1)
        assert list(port.loggers) == ["accounting"]

    def test_from_config_configures_port(self):
        port = RecordingPort()
        config = Config({"proxyfly": {"interceptors": {"logging": {"done_stage": "POSTED"}}}})

        interceptor = LoggingInterceptorBuilder.from_config(config, port).build()
        interceptor.intercept(Ledger, MemoryLedger()).post(2)

        assert port.configured == [config]
        assert interceptor.options.done_stage == "POSTED"
        (_, done) = port.loggers[f"{__name__}.Ledger"].events[-1]
        assert done["stage"] == "POSTED"
