import logging

from logging_config import ContextualFormatter, build_logging_config


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.readings",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Stored sensor readings",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_whitelisted_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(reading_count=6, sensor_type=None, secret="x"))

    assert line == "Stored sensor readings | reading_count=6"


def test_formatter_without_context_leaves_message_alone() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    assert formatter.format(_record()) == "INFO Stored sensor readings"


def test_config_quiets_http_client_loggers() -> None:
    config = build_logging_config("DEBUG")

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"]["httpx"] == {"level": "WARNING"}
    assert config["formatters"]["contextual"]["()"] == "logging_config.ContextualFormatter"
