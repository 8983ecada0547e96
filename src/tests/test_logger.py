import pytest
import logging
import os
from unittest.mock import patch, MagicMock
import tempfile
import shutil

# Import the module to be tested
import logger
from clock import LamportClock, VectorClock


# Fixtures
@pytest.fixture
def clock():
    return LamportClock("test")


@pytest.fixture
def vector_clock():
    return VectorClock("test", 3, 0)


@pytest.fixture
def temp_log_dir():
    """Create a temporary directory for log files."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Clean up after the test
    shutil.rmtree(temp_dir)


def make_record(msg="Test message"):
    return logging.LogRecord(
        name="test_logger",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )


def close_handlers(log):
    for handler in log.handlers[:]:
        handler.close()
        log.removeHandler(handler)


# Tests for LogicalClockFilter
def test_logical_clock_filter(clock, vector_clock):
    """Test that LogicalClockFilter adds both clocks to log records."""
    log_filter = logger.LogicalClockFilter(clock, vector_clock)
    record = make_record()

    assert log_filter.filter(record)

    formatter = logging.Formatter(
        "%(message)s [LogicalClock: %(logical_clock)s] [VectorClock: %(vector_clock)s]"
    )
    assert (
        formatter.format(record)
        == "Test message [LogicalClock: test: 0] [VectorClock: test: [0,0,0]]"
    )


def test_logical_clock_filter_tracks_clock_changes(clock, vector_clock):
    log_filter = logger.LogicalClockFilter(clock, vector_clock)
    clock.send()
    vector_clock.send()

    record = make_record()
    log_filter.filter(record)
    assert record.logical_clock == "test: 1"
    assert record.vector_clock == "test: [1,0,0]"


def test_logical_clock_filter_without_vector(clock):
    record = make_record()
    logger.LogicalClockFilter(clock).filter(record)
    assert record.vector_clock == "-"


# Tests for setup_logger
def test_setup_logger_name(clock):
    """Test that setup_logger creates a logger with the correct name."""
    with patch("logging.getLogger") as mock_get_logger:
        with patch("logging.FileHandler"):
            logger.setup_logger(1, clock)
            mock_get_logger.assert_called_once_with("peer_1")


def test_setup_logger_level(clock):
    """Test that setup_logger sets the correct log level."""
    with patch("logging.getLogger") as mock_get_logger:
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger
        with patch("logging.FileHandler"):
            logger.setup_logger(1, clock, log_level=logging.DEBUG)
            mock_logger.setLevel.assert_called_once_with(logging.DEBUG)


def test_setup_logger_adds_filter(clock, vector_clock):
    """Test that setup_logger adds LogicalClockFilter."""
    with patch("logging.getLogger") as mock_get_logger:
        mock_logger = MagicMock()
        mock_logger.handlers = []
        mock_logger.filters = []
        mock_get_logger.return_value = mock_logger
        with patch("logging.FileHandler"):
            logger.setup_logger(1, clock, vector_clock)
            mock_logger.addFilter.assert_called_once()
            filter_arg = mock_logger.addFilter.call_args[0][0]
            assert isinstance(filter_arg, logger.LogicalClockFilter)
            assert filter_arg.clock == clock
            assert filter_arg.vector_clock == vector_clock


def test_setup_logger_creates_log_dir(clock, temp_log_dir):
    """Test that setup_logger creates the log directory if it doesn't exist."""
    log_dir = os.path.join(temp_log_dir, "test_logs")

    with patch("logging.getLogger"):
        with patch("logging.FileHandler"):
            with patch("os.makedirs") as mock_makedirs:
                logger.setup_logger(1, clock, log_dir=log_dir)
                mock_makedirs.assert_called_once_with(log_dir, exist_ok=True)


def test_setup_logger_creates_file_handler(clock, temp_log_dir):
    """Test that setup_logger creates a file handler with the correct log file name."""
    with patch("logging.getLogger"):
        with patch("logging.FileHandler") as mock_handler:
            with patch("time.strftime", return_value="2023-01-01_12-00"):
                logger.setup_logger(1, clock, log_dir=temp_log_dir, file_mode="a")

                mock_handler.assert_called_once()
                file_name = mock_handler.call_args[0][0]
                assert file_name == os.path.join(
                    temp_log_dir, "peer_log_2023-01-01_12-00_1.txt"
                )
                assert mock_handler.call_args[1]["mode"] == "a"


def test_setup_logger_sets_formatter(clock):
    """Test that setup_logger sets a formatter showing both clocks."""
    with patch("logging.getLogger"):
        with patch("logging.FileHandler") as mock_handler:
            mock_file_handler = MagicMock()
            mock_handler.return_value = mock_file_handler

            logger.setup_logger(1, clock)

            mock_file_handler.setFormatter.assert_called_once()
            formatter = mock_file_handler.setFormatter.call_args[0][0]
            assert "%(logical_clock)s" in formatter._fmt
            assert "%(vector_clock)s" in formatter._fmt


def test_setup_logger_clears_existing_handlers(clock):
    """Test that setup_logger clears any existing handlers and filters."""
    with patch("logging.getLogger") as mock_get_logger:
        mock_logger = MagicMock()
        mock_handler = MagicMock()
        old_filter = MagicMock()
        mock_logger.handlers = [mock_handler]
        mock_logger.filters = [old_filter]
        mock_get_logger.return_value = mock_logger

        with patch("logging.FileHandler"):
            logger.setup_logger(1, clock)

            mock_logger.removeHandler.assert_called_once_with(mock_handler)
            mock_logger.removeFilter.assert_called_once_with(old_filter)


def test_setup_logger_writes_clock_to_file(clock, temp_log_dir):
    log = logger.setup_logger(7, clock, log_dir=temp_log_dir)
    clock.send()
    log.info("Event: hello")
    close_handlers(log)

    (name,) = os.listdir(temp_log_dir)
    assert name.startswith("peer_log_") and name.endswith("_7.txt")
    with open(os.path.join(temp_log_dir, name)) as f:
        content = f.read()
    assert "Event: hello" in content
    assert "[LogicalClock: test: 1]" in content


# Tests for setup_ledger_logger
def test_setup_ledger_logger_file_name(temp_log_dir):
    with patch("logging.FileHandler") as mock_handler:
        with patch("time.strftime", return_value="2023-01-01_12-00"):
            logger.setup_ledger_logger(3, log_dir=temp_log_dir)
            assert mock_handler.call_args[0][0] == os.path.join(
                temp_log_dir, "ledger_2023-01-01_12-00_3.txt"
            )


def test_setup_ledger_logger_writes_bare_lines(temp_log_dir):
    log = logger.setup_ledger_logger(4, log_dir=temp_log_dir)
    assert log.propagate is False

    log.info("1 0 [1,0] 12.000000001")
    close_handlers(log)

    (name,) = os.listdir(temp_log_dir)
    with open(os.path.join(temp_log_dir, name)) as f:
        assert f.read() == "1 0 [1,0] 12.000000001\n"


def test_setup_ledger_logger_is_idempotent(temp_log_dir):
    logger.setup_ledger_logger(5, log_dir=temp_log_dir)
    log = logger.setup_ledger_logger(5, log_dir=temp_log_dir)
    assert len(log.handlers) == 1
    close_handlers(log)


def test_setup_logger_does_not_propagate_to_root(clock, temp_log_dir):
    """Peer events go only to the peer's file, not to the parent's root handlers."""
    log = logger.setup_logger(8, clock, log_dir=temp_log_dir)
    root_handler = MagicMock()
    root_handler.level = logging.NOTSET
    logging.getLogger().addHandler(root_handler)
    try:
        assert log.propagate is False
        log.info("Event: quiet")
        root_handler.handle.assert_not_called()
    finally:
        logging.getLogger().removeHandler(root_handler)
        close_handlers(log)
