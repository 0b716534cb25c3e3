import io
import logging

from githarvest.core.config import LoggingConfig
from githarvest.core.log import configure_logging, get_logger, temp_level


def test_configure_logging_sets_logger_level():
    logger = logging.getLogger("githarvest")
    logger.setLevel(logging.WARNING)

    configure_logging(level="DEBUG")

    assert logger.level == logging.DEBUG
    assert logger.propagate is True


def test_temp_level_changes_and_restores():
    logger = logging.getLogger("githarvest.test.temp")
    logger.setLevel(logging.WARNING)
    original_level = logger.level

    with temp_level(logging.DEBUG, name=logger.name):
        assert logger.level == logging.DEBUG

    assert logger.level == original_level


def test_module_loggers_live_under_package_logger():
    assert get_logger("githarvest.core.walker").parent.name in {"githarvest.core", "githarvest"}
    assert get_logger().name == "githarvest"


def test_logging_config_apply_writes_thread_name():
    stream = io.StringIO()
    name = "githarvest.test.apply"
    LoggingConfig(level="INFO", propagate=False, logger_name=name).apply()
    logger = logging.getLogger(name)
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.stream = stream
    logger.info("hello")
    assert "[MainThread]" in stream.getvalue()
    assert "hello" in stream.getvalue()
    assert logger.propagate is False
