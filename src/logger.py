# logger.py
import logging
import time
import os


class LogicalClockFilter(logging.Filter):
    """A filter that adds logical clock information to log records"""

    def __init__(self, clock, vector_clock=None):
        super().__init__()
        self.clock = clock
        self.vector_clock = vector_clock

    def filter(self, record):
        record.logical_clock = str(self.clock)
        record.vector_clock = (
            str(self.vector_clock) if self.vector_clock is not None else "-"
        )
        return True


def _log_file_name(log_dir, prefix, peer_id):
    # Create log file name with timestamp to the minute
    return os.path.join(
        log_dir, f"{prefix}_{time.strftime('%Y-%m-%d_%H-%M')}_{peer_id}.txt"
    )


def _reset_handlers(logger):
    # Clear any existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    for log_filter in logger.filters[:]:
        logger.removeFilter(log_filter)


def setup_logger(
    peer_id,
    logical_clock,
    vector_clock=None,
    log_level=logging.INFO,
    file_mode="w",
    log_dir="./logs/ledger_runs",
):
    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger(f"peer_{peer_id}")
    logger.setLevel(log_level)
    logger.propagate = False
    _reset_handlers(logger)

    # Add our filter that injects the clocks into each record
    logger.addFilter(LogicalClockFilter(logical_clock, vector_clock))

    file_handler = logging.FileHandler(
        _log_file_name(log_dir, "peer_log", peer_id), mode=file_mode
    )
    file_handler.setLevel(log_level)

    formatter = logging.Formatter(
        " %(message)s | %(asctime)s | %(levelname)s"
        " | [LogicalClock: %(logical_clock)s] [VectorClock: %(vector_clock)s]"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def setup_ledger_logger(peer_id, file_mode="w", log_dir="./logs/ledger_runs"):
    """
    Logger backing a peer's causal log: one bare line per entry.

    FileHandler flushes after every record, so the file is complete up to
    the last appended entry even if the peer is killed.
    """
    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger(f"ledger_{peer_id}")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    _reset_handlers(logger)

    file_handler = logging.FileHandler(
        _log_file_name(log_dir, "ledger", peer_id), mode=file_mode
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(file_handler)

    return logger
