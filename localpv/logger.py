"""Route plain log output into the ``logging`` system and flush it periodically."""

from __future__ import annotations

import logging
import threading

# Default interval, in seconds, between log flushes.
KLOG_FLUSH_INTERVAL = 5.0

LOGGER_NAME = "localpv"
FLUSHER_THREAD_NAME = "localpv-log-flusher"

_logger = logging.getLogger(LOGGER_NAME)


class LogWriter:
    """A writable stream whose every write becomes an INFO log record."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or _logger

    def write(self, data: str | bytes) -> int:
        """Log ``data`` and report it as fully written."""
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("utf-8", errors="replace")
        else:
            text = data
        message = text.rstrip("\n")
        if message:
            self.logger.info(message)
        return len(data)

    def flush(self) -> None:
        """Flush the handlers behind the logger."""
        for handler in self.logger.handlers:
            handler.flush()


class _LoggingState:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.default_flush_interval = KLOG_FLUSH_INTERVAL
        self.stop = threading.Event()
        self.flusher: threading.Thread | None = None


_state = _LoggingState()


def _flush_handlers() -> None:
    for logger in (_logger, logging.getLogger()):
        for handler in logger.handlers:
            handler.flush()


def _flush_until(period: float, stop: threading.Event) -> None:
    while True:
        _flush_handlers()
        if stop.wait(period):
            return


def set_default_flush_interval(freq: float) -> None:
    """Set the flush interval that the logging backend already applies on its own."""
    with _state.lock:
        _state.default_flush_interval = float(freq)


def init_logging(flush_frequency: float | None = None) -> LogWriter:
    """Set up message-only INFO logging and return a stream that feeds it.

    When ``flush_frequency`` differs from the default flush interval, a
    background thread flushes the log handlers at that frequency until
    :func:`finish_logging` is called.
    """
    freq = KLOG_FLUSH_INTERVAL if flush_frequency is None else float(flush_frequency)
    if freq <= 0:
        raise ValueError("log flush frequency must be positive")

    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        _logger.addHandler(handler)
    if _logger.level == logging.NOTSET:
        _logger.setLevel(logging.INFO)

    with _state.lock:
        if _state.stop.is_set():
            _state.stop = threading.Event()
        running = _state.flusher is not None and _state.flusher.is_alive()
        if freq != _state.default_flush_interval and not running:
            _state.flusher = threading.Thread(
                target=_flush_until,
                args=(freq, _state.stop),
                name=FLUSHER_THREAD_NAME,
                daemon=True,
            )
            _state.flusher.start()
    return LogWriter()


def finish_logging() -> None:
    """Stop the periodic flusher and flush all pending log output."""
    with _state.lock:
        if _state.stop.is_set():
            raise RuntimeError("logging already finished")
        _state.stop.set()
        flusher, _state.flusher = _state.flusher, None
    if flusher is not None:
        flusher.join()
    _flush_handlers()