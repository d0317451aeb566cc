"""Asynchronous log file: producers queue lines, a consumer thread writes them."""

from __future__ import annotations

import enum
import inspect
import threading
import time
from collections import deque
from typing import Any, Deque, Optional, TextIO


class LogLevel(enum.IntEnum):
    VERBOSE = 0
    TRACE = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    FATAL = 5


class LogFile:
    """Collects formatted log lines and writes them to a file from a consumer thread."""

    def __init__(self, level: LogLevel = LogLevel.INFO) -> None:
        self.level = LogLevel(level)
        self._pending: Deque[str] = deque()
        self._cond = threading.Condition()
        self._file_lock = threading.Lock()
        self._file: Optional[TextIO] = None
        self._closed = False
        self._consumer: Optional[threading.Thread] = None

    def open(self, filename: str) -> None:
        """Open ``filename`` for appending, closing any file opened before."""
        with self._file_lock:
            if self._file is not None:
                self._file.close()
            self._file = open(filename, "a", encoding="utf-8")

    def write_log(self, level: LogLevel, func: str, line: int, fmt: str, *args: Any) -> None:
        """Format a record and queue it for the consumer."""
        if self._closed:
            raise RuntimeError("log is closed")
        stamp = time.strftime("[%Y-%m-%d %H:%M:%S]", time.localtime())
        content = fmt % args if args else fmt
        record = (
            f"{stamp}[{LogLevel(level).name}][tid:{threading.get_native_id()}]"
            f"[{func}:{line}]{content}\n"
        )
        with self._cond:
            self._pending.append(record)
            self._cond.notify()

    def consume(self) -> None:
        """Write queued lines until the log is closed and the queue is drained."""
        while True:
            with self._cond:
                self._cond.wait_for(lambda: bool(self._pending) or self._closed)
                if not self._pending:
                    return
                record = self._pending.popleft()
            self._write_to_file(record)

    def start_consumer(self) -> threading.Thread:
        """Run :meth:`consume` on a background thread."""
        if self._consumer is None:
            self._consumer = threading.Thread(
                target=self.consume, name="log-consumer", daemon=True
            )
            self._consumer.start()
        return self._consumer

    def close(self) -> None:
        """Flush queued lines through the consumer, then close the file."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        if self._consumer is not None:
            self._consumer.join()
        with self._file_lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def verbose(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.VERBOSE, fmt, args)

    def trace(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.TRACE, fmt, args)

    def info(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.INFO, fmt, args)

    def warning(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.WARNING, fmt, args)

    def error(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.ERROR, fmt, args)

    def fatal(self, fmt: str, *args: Any) -> None:
        self._log_from_caller(LogLevel.FATAL, fmt, args)

    def _log_from_caller(self, level: LogLevel, fmt: str, args: tuple) -> None:
        frame = inspect.currentframe()
        caller = frame.f_back.f_back if frame and frame.f_back else None
        func = caller.f_code.co_name if caller else "?"
        line = caller.f_lineno if caller else 0
        del frame, caller
        self.write_log(level, func, line, fmt, *args)

    def _write_to_file(self, record: str) -> bool:
        with self._file_lock:
            if self._file is None:
                return False
            self._file.write(record)
            self._file.flush()
            return True