"""
Unit tests for the command-line entry point.
"""

import logging
import socket

import pytest

from slowserver import __version__
from slowserver.__main__ import build_parser, main
from slowserver.log import PACKAGE_LOGGER


@pytest.fixture
def restore_logging():
    """main() installs a console handler; take it off again."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(package_logger.handlers)
    level = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers:
            package_logger.removeHandler(handler)
    package_logger.setLevel(level)


def test_parser_defaults():
    args = build_parser().parse_args([])

    assert args.host == "127.0.0.1"
    assert args.port == 3000
    assert args.slow_ms == 10_000
    assert args.log_level == "INFO"
    assert args.no_color is False


def test_parser_options():
    args = build_parser().parse_args(["-p", "8080", "--slow-ms", "250", "--no-color", "-l", "DEBUG"])

    assert args.port == 8080
    assert args.slow_ms == 250
    assert args.no_color is True
    assert args.log_level == "DEBUG"


@pytest.mark.parametrize("argv", [
    ["--port", "70000"],
    ["--port", "-1"],
    ["--slow-ms", "-5"],
    ["--port", "abc"],
])
def test_invalid_arguments_exit_2(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    assert exc_info.value.code == 2


def test_version(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_port_in_use_exits_1(restore_logging, caplog):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]

        with caplog.at_level(logging.INFO, logger=PACKAGE_LOGGER):
            code = main(["--port", str(port), "--no-color"])

    assert code == 1
    assert any("Failed to start server" in m for m in caplog.messages)
