"""Supervision of one child process.

The monitor owns the polling loop: two reader threads push lines into
per-stream queues, and every tick the loop drains whatever is available,
forwards the newest line to the progress handle, appends to the optional log
file and bumps the handle so unbounded commands still show liveness.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from queue import Empty, SimpleQueue
from threading import Event, Thread
import time
from typing import IO, Callable, List, Optional, Protocol

from termreport.command_runner import CommandRunner, ProcessHandle, SubprocessCommandRunner
from termreport.errors import (
    InternalError,
    LogFileError,
    ProcessCancelledError,
    ProcessFailedError,
    SpawnError,
    WorkingDirectoryError,
)
from termreport.process_spec import ProcessSpec

DEFAULT_POLL_INTERVAL = 0.1


class ProgressSink(Protocol):
    def set_message(self, message: str) -> None:
        ...

    def increment_with_overflow(self, count: int = 1) -> None:
        ...


class MonitorState(Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def start_process(spec: ProcessSpec, runner: Optional[CommandRunner] = None) -> ProcessHandle:
    if spec.working_directory is not None and not Path(spec.working_directory).exists():
        raise WorkingDirectoryError(spec.working_directory)
    runner = runner or SubprocessCommandRunner()
    try:
        return runner.spawn(spec)
    except OSError as exc:
        raise SpawnError(spec.full_command(), str(exc)) from exc


def execute_process(
    spec: ProcessSpec,
    progress: ProgressSink,
    *,
    runner: Optional[CommandRunner] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    cancel_event: Optional[Event] = None,
) -> Optional[str]:
    process = start_process(spec, runner)
    monitor = ProcessMonitor(
        spec=spec,
        process=process,
        progress=progress,
        poll_interval=poll_interval,
        cancel_event=cancel_event,
    )
    return monitor.run()


class _LineReader:
    def __init__(self, name: str, stream: IO[str]) -> None:
        self._stream = stream
        self._queue: "SimpleQueue[str]" = SimpleQueue()
        self._logger = logging.getLogger("termreport").getChild("LineReader")
        self._thread = Thread(target=self._read, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self) -> None:
        self._thread.join()

    def drain(self) -> List[str]:
        lines: List[str] = []
        while True:
            try:
                lines.append(self._queue.get_nowait())
            except Empty:
                return lines

    def _read(self) -> None:
        try:
            for line in iter(self._stream.readline, ""):
                self._queue.put(_strip_line_ending(line))
        except (OSError, ValueError) as exc:
            # A broken pipe ends this stream; the exit status still decides the result.
            self._logger.debug("Stopped reading %s: %s", self._thread.name, exc)
        finally:
            self._stream.close()


def _strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


@dataclass
class ProcessMonitor:
    spec: ProcessSpec
    process: ProcessHandle
    progress: ProgressSink
    poll_interval: float = DEFAULT_POLL_INTERVAL
    cancel_event: Optional[Event] = None
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        self._logger = logging.getLogger("termreport").getChild(self.__class__.__name__)
        self.state = MonitorState.STARTING
        self._stdout_content: List[str] = []
        self._stderr_content: List[str] = []
        self._log_file: Optional[IO[str]] = None
        self._cancelled = False

    @property
    def stdout_text(self) -> str:
        return "".join(self._stdout_content)

    @property
    def stderr_text(self) -> str:
        return "".join(self._stderr_content)

    def run(self) -> Optional[str]:
        if self.process.stdout is None or self.process.stderr is None:
            missing = "stdout" if self.process.stdout is None else "stderr"
            self._abandon()
            raise InternalError(f"Internal Error: Child has no {missing}")

        self._open_log_file()
        stdout_reader = _LineReader(f"{self.spec.program}-stdout", self.process.stdout)
        stderr_reader = _LineReader(f"{self.spec.program}-stderr", self.process.stderr)
        stdout_reader.start()
        stderr_reader.start()
        try:
            returncode = self._poll_until_exit(stdout_reader, stderr_reader)
            self.state = MonitorState.DRAINING
            # Readers finish once their pipe hits end of stream, so the last
            # drain after joining sees every line the child wrote.
            stdout_reader.join()
            stderr_reader.join()
            self._handle_lines(stdout_reader.drain(), stderr_reader.drain())
        except BaseException:
            self.state = MonitorState.FAILED
            self._terminate()
            raise
        finally:
            self._close_log_file()
        return self._finish(returncode)

    def _poll_until_exit(self, stdout_reader: _LineReader, stderr_reader: _LineReader) -> int:
        self.state = MonitorState.RUNNING
        while True:
            returncode = self.process.poll()
            if returncode is not None:
                return returncode
            self._handle_lines(stdout_reader.drain(), stderr_reader.drain())
            if self._cancel_requested():
                self._logger.warning("Cancelling %s", self.spec.full_command())
                self._cancelled = True
                self.process.terminate()
            self.sleep(self.poll_interval)
            self.progress.increment_with_overflow(1)

    def _cancel_requested(self) -> bool:
        if self._cancelled or self.cancel_event is None:
            return False
        return self.cancel_event.is_set()

    def _handle_lines(self, stdout_lines: List[str], stderr_lines: List[str]) -> None:
        if not stdout_lines and not stderr_lines:
            return
        if self.spec.return_stdout:
            self._stdout_content.extend(f"{line}\n" for line in stdout_lines)
        self._stderr_content.extend(f"{line}\n" for line in stderr_lines)

        newest = stderr_lines[-1] if stderr_lines else stdout_lines[-1]
        self.progress.set_message(newest)

        if self._log_file is None:
            return
        try:
            for line in stdout_lines + stderr_lines:
                self._log_file.write(f"{line}\n")
            self._log_file.flush()
        except OSError as exc:
            self._logger.warning(
                "Log file write failed for %s; further output not logged: %s",
                self.spec.log_file_path,
                exc,
            )
            self._close_log_file()

    def _finish(self, returncode: int) -> Optional[str]:
        stderr = self.stderr_text
        if returncode == 0:
            self.state = MonitorState.SUCCEEDED
            self._logger.debug("Process succeeded: %s", self.spec.full_command())
            return self.stdout_text if self.spec.return_stdout else None

        self.state = MonitorState.FAILED
        if self._cancelled:
            raise ProcessCancelledError(self.spec.full_command(), stderr)
        # Negative return codes mean the child was killed by a signal.
        exit_code = returncode if returncode > 0 else None
        self._logger.info(
            "Process failed: %s (exit=%s)",
            self.spec.full_command(),
            "unknown" if exit_code is None else exit_code,
        )
        raise ProcessFailedError(exit_code, stderr)

    def _open_log_file(self) -> None:
        path = self.spec.log_file_path
        if path is None:
            return
        header = (
            f"command: {self.spec.full_command()}\n"
            f"directory: {self.spec.working_directory or ''}\n"
            f"arguments: {' '.join(self.spec.arguments)}\n\n"
        )
        try:
            log_file = open(path, "w", encoding="utf-8")
        except OSError as exc:
            self._abandon()
            raise LogFileError(path, str(exc)) from exc
        try:
            log_file.write(header)
            log_file.flush()
        except OSError as exc:
            log_file.close()
            self._abandon()
            raise LogFileError(path, str(exc)) from exc
        self._log_file = log_file

    def _close_log_file(self) -> None:
        if self._log_file is None:
            return
        log_file, self._log_file = self._log_file, None
        try:
            log_file.close()
        except OSError as exc:
            self._logger.warning("Log file close failed for %s: %s", self.spec.log_file_path, exc)

    def _abandon(self) -> None:
        """Stop a child whose output will never be read and release its pipes."""
        self._terminate()
        for stream in (self.process.stdout, self.process.stderr):
            if stream is not None:
                stream.close()

    def _terminate(self) -> None:
        if self.process.poll() is not None:
            return
        self.process.terminate()
        self.process.wait()
