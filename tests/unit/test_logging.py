"""Unit tests for logging setup and formatters."""

import io
import json
import logging

import pytest

from chartsmith.utils.logging import (
    ROOT_LOGGER,
    HumanFormatter,
    JSONFormatter,
    LogMode,
    VerboseFormatter,
    configure_from_cli,
    get_logger,
    log_event,
    setup_logging,
)


def make_record(msg: str = "hello", level: int = logging.INFO, **fields: object) -> logging.LogRecord:
    record = logging.LogRecord("chartsmith.test", level, __file__, 1, msg, None, None)
    if fields:
        record.extra_data = fields
    return record


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Restore the chartsmith logger after each test."""
    logger = logging.getLogger(ROOT_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class TestFormatters:
    """Tests for the three output formatters."""

    def test_human_plain(self) -> None:
        """Test human format without colors."""
        assert HumanFormatter(use_colors=False).format(make_record()) == "[INFO] hello"

    def test_human_extra_fields(self) -> None:
        """Test that structured fields become key=value pairs."""
        formatted = HumanFormatter(use_colors=False).format(make_record(mode="full", ms=3))

        assert formatted == "[INFO] hello mode=full ms=3"

    def test_human_colors(self) -> None:
        """Test that colored output wraps the level."""
        formatted = HumanFormatter(use_colors=True).format(make_record(level=logging.ERROR))

        assert formatted.startswith("\033[31m[ERROR]")

    def test_verbose_includes_logger_name(self) -> None:
        """Test verbose format."""
        formatted = VerboseFormatter(use_colors=False).format(make_record())

        assert formatted.startswith("[INFO][")
        assert formatted.endswith("chartsmith.test: hello")

    def test_json_merges_fields(self) -> None:
        """Test that JSON output carries structured fields at top level."""
        entry = json.loads(JSONFormatter().format(make_record(cache_key="k")))

        assert entry["level"] == "INFO"
        assert entry["msg"] == "hello"
        assert entry["logger"] == "chartsmith.test"
        assert entry["cache_key"] == "k"


class TestSetup:
    """Tests for setup_logging and configure_from_cli."""

    def test_single_handler(self) -> None:
        """Test that repeated setup does not stack handlers."""
        setup_logging(stream=io.StringIO())
        setup_logging(stream=io.StringIO())

        assert len(logging.getLogger(ROOT_LOGGER).handlers) == 1

    def test_json_mode_output(self) -> None:
        """Test that log_event fields reach the JSON stream."""
        stream = io.StringIO()
        setup_logging(mode=LogMode.JSON, stream=stream)

        log_event(logging.getLogger("chartsmith.pipeline"), logging.INFO, "Rendered", mode="full")

        entry = json.loads(stream.getvalue())
        assert entry["msg"] == "Rendered"
        assert entry["mode"] == "full"

    def test_level_filters(self) -> None:
        """Test that records below the level are dropped."""
        stream = io.StringIO()
        setup_logging(level=logging.WARNING, stream=stream)

        logging.getLogger("chartsmith.x").info("hidden")

        assert stream.getvalue() == ""

    @pytest.mark.parametrize(
        ("flags", "level"),
        [
            ({}, logging.INFO),
            ({"verbose": True}, logging.DEBUG),
            ({"quiet": True}, logging.WARNING),
            ({"ci": True}, logging.INFO),
        ],
    )
    def test_configure_from_cli_levels(self, flags: dict, level: int) -> None:
        """Test CLI flag to level mapping."""
        configure_from_cli(**flags)

        assert logging.getLogger(ROOT_LOGGER).level == level

    def test_ci_uses_json(self) -> None:
        """Test that CI mode installs the JSON formatter."""
        configure_from_cli(ci=True)

        [handler] = logging.getLogger(ROOT_LOGGER).handlers
        assert isinstance(handler.formatter, JSONFormatter)

    def test_structured_logger(self) -> None:
        """Test the structured() convenience method."""
        stream = io.StringIO()
        setup_logging(mode=LogMode.JSON, stream=stream)
        logger = get_logger()

        logger.structured(logging.WARNING, "Slow render", ms=120)

        assert json.loads(stream.getvalue())["ms"] == 120
