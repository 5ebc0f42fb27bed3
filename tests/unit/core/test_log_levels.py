"""Tests for per-sink log level filtering."""

import tempfile
from pathlib import Path

import pytest

from braid.core.log import (
    LEVELS,
    ConsoleSink,
    FileSink,
    LogfireSink,
    OTLPSink,
    level_name,
    setup_logger,
)


@pytest.fixture
def temp_log_dir():
    """Temporary log root; console logging restored afterwards."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
    setup_logger(
        log_root=Path(tempfile.gettempdir()) / "braid-tests",
        run_name="test",
        console=ConsoleSink(level="debug"),
    )


def file_logger(log_dir, **file_options):
    return setup_logger(
        log_root=log_dir,
        run_name="test",
        console=ConsoleSink(enabled=False),
        otlp=OTLPSink(enabled=False),
        file=FileSink(enabled=True, **file_options),
        logfire=LogfireSink(enabled=False),
    )


def test_spew_level_includes_all(temp_log_dir):
    log_file = temp_log_dir / "spew.log"
    logger = file_logger(temp_log_dir, level="spew", path=str(log_file))

    logger.spew("SPEW message")
    logger.trace("TRACE message")
    logger.debug("DEBUG message")
    logger.info("INFO message")
    logger.close()

    content = log_file.read_text()
    assert "SPEW message" in content
    assert "TRACE message" in content
    assert "DEBUG message" in content
    assert "INFO message" in content


def test_info_level_filters_verbose_records(temp_log_dir):
    log_file = temp_log_dir / "info.log"
    logger = file_logger(temp_log_dir, level="info", path=str(log_file))

    logger.spew("SPEW message")
    logger.debug("DEBUG message")
    logger.info("INFO message")
    logger.warning("WARN message")
    logger.close()

    content = log_file.read_text()
    assert "SPEW message" not in content
    assert "DEBUG message" not in content
    assert "INFO message" in content
    assert "WARN message" in content


def test_default_path_uses_run_name(temp_log_dir):
    logger = file_logger(temp_log_dir, level="info")

    logger.info("hello")
    logger.close()

    assert "hello" in (temp_log_dir / "test" / "braid.log").read_text()


def test_extra_attributes_rendered(temp_log_dir):
    log_file = temp_log_dir / "attrs.log"
    logger = file_logger(temp_log_dir, level="info", path=str(log_file))

    logger.info("Merging", source="main")
    logger.close()

    assert "source='main'" in log_file.read_text()


def test_level_name_round_trip():
    for name, number in LEVELS.items():
        assert level_name(number) == name
