"""
Request-scoped logging.

``RequestLogger.with_values`` returns a new adapter every time; the receiver
is never mutated, so concurrent reconciliations cannot leak fields into each
other's log lines.
"""
import logging
from typing import Any, Mapping, Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, datefmt=LOG_DATEFMT)


class RequestLogger(logging.LoggerAdapter):
    def __init__(self, logger: Union[logging.Logger, logging.LoggerAdapter], values: Mapping[str, Any] = None):
        super().__init__(logger, {})
        self._values = dict(values or {})

    @property
    def values(self) -> dict:
        return dict(self._values)

    def with_values(self, **values: Any) -> "RequestLogger":
        merged = dict(self._values)
        merged.update(values)
        return RequestLogger(self.logger, merged)

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra["values"] = self.values
        kwargs["extra"] = extra
        if self._values:
            # msg is %-formatted later with the call args
            fields = " ".join(f"{k}={v}" for k, v in self._values.items()).replace("%", "%%")
            msg = f"{msg} | {fields}"
        return msg, kwargs

    def log_error(self, err: BaseException, msg: str) -> None:
        self.error(f"{msg}: {err}")


def as_request_logger(logger: Union[logging.Logger, logging.LoggerAdapter]) -> RequestLogger:
    """Wrap a plain logger or adapter (e.g. kopf's per-object logger)."""
    if isinstance(logger, RequestLogger):
        return logger
    return RequestLogger(logger)
