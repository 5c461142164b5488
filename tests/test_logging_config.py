from __future__ import annotations

import logging

from logging_config import ContextualFormatter, _library_level
from transport.client import ConnectionStatus


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("transport.client", logging.INFO, __file__, 1, "Connection closed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_in_order() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(
        _record(close_code=4001, dataset_id="ds-1", status=ConnectionStatus.error, ignored="x")
    )

    assert line == "Connection closed | dataset_id=ds-1 status=error close_code=4001"


def test_formatter_quotes_values_with_spaces() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(reason="Authentication rejected by server"))

    assert line == "Connection closed | reason='Authentication rejected by server'"


def test_library_loggers_stay_quiet_unless_debugging() -> None:
    assert _library_level("INFO") == "WARNING"
    assert _library_level("DEBUG") == "DEBUG"
    assert _library_level(logging.DEBUG) == logging.DEBUG
