import sys

import pytest
from loguru import logger

from qosc.util import (
    TEST_LOGLEVEL,
    clear_log,
    format_error_response,
    log_default_path,
    start_client_log,
    start_log,
    start_server_log,
)


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_client_log_to_file(tmp_path):
    log_path = tmp_path / "client.log"
    used = start_client_log(log_path=str(log_path), log_level=TEST_LOGLEVEL)
    assert used == str(log_path)
    logger.trace("tracing {}", 42)
    logger.remove()
    text = log_path.read_text()
    assert "Client log started" in text
    assert "| client |" in text
    assert "tracing 42" in text


def test_server_log_clears_previous(tmp_path):
    log_path = tmp_path / "server.log"
    log_path.write_text("old contents\n")
    start_server_log(log_path=str(log_path), clear_prev=True)
    logger.remove()
    text = log_path.read_text()
    assert "old contents" not in text
    assert "Server log started" in text
    assert "| server |" in text


def test_server_log_keeps_previous(tmp_path):
    log_path = tmp_path / "server.log"
    log_path.write_text("old contents\n")
    start_server_log(log_path=str(log_path), clear_prev=False)
    logger.remove()
    assert log_path.read_text().startswith("old contents")


def test_stdout_only(tmp_path, capsys):
    assert start_client_log(log_to_file=False, log_to_stdout=True) is None
    logger.warning("to the terminal")
    logger.remove()
    assert "to the terminal" in capsys.readouterr().err


def test_level_filters(tmp_path):
    log_path = tmp_path / "server.log"
    start_server_log(log_path=str(log_path), log_level="WARNING")
    logger.info("quiet")
    logger.warning("loud")
    logger.remove()
    text = log_path.read_text()
    assert "quiet" not in text
    assert "loud" in text


def test_default_paths():
    assert log_default_path("server").endswith("server.log")
    assert log_default_path("client").endswith("client.log")


def test_unknown_role():
    with pytest.raises(ValueError, match="Unknown log role"):
        start_log("gateway", log_to_file=False)


def test_clear_log_missing_file(tmp_path):
    clear_log(str(tmp_path / "nope.log"))


def test_format_error_response():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        text = format_error_response()
    assert "RuntimeError: boom" in text
