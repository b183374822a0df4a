import contextlib
import logging
import threading

import pytest

from localpv import logger as log_mod
from localpv.logger import (
    FLUSHER_THREAD_NAME,
    KLOG_FLUSH_INTERVAL,
    LogWriter,
    finish_logging,
    init_logging,
    set_default_flush_interval,
)


class _FlushProbe(logging.Handler):
    def __init__(self):
        super().__init__()
        self.flushed = threading.Event()

    def emit(self, record):
        pass

    def flush(self):
        self.flushed.set()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    with contextlib.suppress(RuntimeError):
        finish_logging()
    set_default_flush_interval(KLOG_FLUSH_INTERVAL)


@pytest.fixture
def probe():
    handler = _FlushProbe()
    target = logging.getLogger(log_mod.LOGGER_NAME)
    target.addHandler(handler)
    yield handler
    target.removeHandler(handler)


def _flusher_running():
    return any(t.name == FLUSHER_THREAD_NAME for t in threading.enumerate())


def test_writer_logs_text_and_returns_length(caplog):
    caplog.set_level(logging.INFO, logger=log_mod.LOGGER_NAME)
    writer = LogWriter()
    written = writer.write("volume provisioned\n")
    assert written == len("volume provisioned\n")
    assert [r.getMessage() for r in caplog.records] == ["volume provisioned"]
    assert caplog.records[0].levelno == logging.INFO


def test_writer_accepts_bytes(caplog):
    caplog.set_level(logging.INFO, logger=log_mod.LOGGER_NAME)
    written = LogWriter().write(b"from bytes")
    assert written == len(b"from bytes")
    assert [r.getMessage() for r in caplog.records] == ["from bytes"]


def test_init_logging_returns_working_writer(caplog):
    caplog.set_level(logging.INFO, logger=log_mod.LOGGER_NAME)
    writer = init_logging()
    print("printed through the log", file=writer)
    assert [r.getMessage() for r in caplog.records] == ["printed through the log"]


def test_no_flusher_at_default_frequency():
    writer = init_logging()
    assert writer.write("default") == len("default")
    assert _flusher_running() is False


def test_flusher_runs_at_custom_frequency(probe):
    writer = init_logging(0.01)
    assert writer.write("custom") == len("custom")
    assert _flusher_running() is True
    assert probe.flushed.wait(2.0) is True
    finish_logging()
    assert _flusher_running() is False


def test_default_interval_change_disables_flusher():
    set_default_flush_interval(0.02)
    writer = init_logging(0.02)
    assert writer.write("same") == len("same")
    assert _flusher_running() is False


def test_finish_logging_flushes(probe):
    writer = init_logging()
    assert writer.write("before finish") == len("before finish")
    finish_logging()
    assert probe.flushed.is_set() is True


def test_finish_twice_raises():
    init_logging()
    finish_logging()
    with pytest.raises(RuntimeError):
        finish_logging()


def test_non_positive_frequency_rejected():
    with pytest.raises(ValueError):
        init_logging(0)