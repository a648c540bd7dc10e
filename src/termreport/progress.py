from __future__ import annotations

import logging
from threading import Event, RLock
from typing import TYPE_CHECKING, List, Optional

from rich.console import RenderableType
from rich.progress import BarColumn, Progress, ProgressColumn, SpinnerColumn, Task, TaskID, TextColumn
from rich.text import Text

from termreport.command_runner import CommandRunner
from termreport.levels import Level, format_log
from termreport.monitor import DEFAULT_POLL_INTERVAL, execute_process
from termreport.process_spec import ProcessSpec

if TYPE_CHECKING:
    from termreport.printer import Printer

# Columns taken by the bar (or spinner) itself on one progress line.
PROGRESS_WIDTH = 28

_EXCLUDED_CHARACTERS = {"\b", "\r", "\n"}


def sanitize_output(text: str, max_length: int) -> str:
    """Strip characters that break a single-line render, then fit to width."""
    max_length = max(max_length, 0)
    cleaned = "".join(ch for ch in text if ch not in _EXCLUDED_CHARACTERS)
    return cleaned[:max_length].ljust(max_length)


class _BarOrSpinnerColumn(ProgressColumn):
    def __init__(self) -> None:
        super().__init__()
        self._bar = BarColumn(bar_width=PROGRESS_WIDTH - 2)
        self._spinner = SpinnerColumn()

    def render(self, task: Task) -> RenderableType:
        if task.total is not None:
            return self._bar.render(task)
        if task.stop_time is not None:
            return Text(" ")
        return self._spinner.render(task)


class ProgressHandle:
    """One progress line. All mutations go through the owning printer's lock."""

    def __init__(
        self,
        *,
        lock: RLock,
        progress: Progress,
        task_id: TaskID,
        prefix: str,
        total: Optional[int],
        level: Level,
        indent: int,
        max_width: int,
        ending_message: Optional[str] = None,
    ) -> None:
        self._lock = lock
        self._progress = progress
        self._task_id = task_id
        self._prefix = prefix
        self._total = total
        self._position = 0
        self._message = ""
        self._printer_level = level
        self._indent = indent
        self._max_width = max_width
        self._ending_message = ending_message
        self._finished = False
        self._logger = logging.getLogger("termreport").getChild(self.__class__.__name__)

    @property
    def total(self) -> Optional[int]:
        return self._total

    @property
    def position(self) -> int:
        return self._position

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def indent(self) -> int:
        return self._indent

    @property
    def message(self) -> str:
        return self._message

    @property
    def ending_message(self) -> Optional[str]:
        return self._ending_message

    @property
    def finished(self) -> bool:
        return self._finished

    def set_total(self, total: int) -> None:
        with self._lock:
            if self._total == total:
                return
            # A new total starts a new pass.
            self._total = total
            self._position = 0
            self._progress.update(self._task_id, total=total, completed=0)

    def increment(self, count: int = 1) -> None:
        with self._lock:
            self._position += count
            self._progress.update(self._task_id, completed=self._position)

    def increment_with_overflow(self, count: int = 1) -> None:
        with self._lock:
            self._position += count
            if self._total is not None and self._position >= self._total:
                self._position = 0
            self._progress.update(self._task_id, completed=self._position)

    def set_prefix(self, prefix: str) -> None:
        with self._lock:
            self._prefix = prefix
            self._progress.update(self._task_id, prefix=f"{prefix}:")

    def set_message(self, message: str) -> None:
        with self._lock:
            self._message = self._construct_message(message)
            self._progress.update(self._task_id, description=self._message)

    def set_ending_message(self, message: str) -> None:
        with self._lock:
            self._ending_message = message

    def log(self, level: Level, message: str) -> None:
        if level < self._printer_level:
            return
        with self._lock:
            self._progress.console.print(
                format_log(self._indent, self._max_width, level, message), end=""
            )

    def execute_process(
        self,
        spec: ProcessSpec,
        *,
        runner: Optional[CommandRunner] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel_event: Optional[Event] = None,
    ) -> Optional[str]:
        self.set_message(spec.full_command())
        self._logger.debug("Executing %s", spec.full_command_in_working_directory())
        return execute_process(
            spec,
            self,
            runner=runner,
            poll_interval=poll_interval,
            cancel_event=cancel_event,
        )

    def finish(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            if self._ending_message is None:
                return
            self._message = self._construct_message(self._ending_message)
            completed = self._total if self._total is not None else self._position
            self._progress.update(self._task_id, description=self._message, completed=completed)
            self._progress.stop_task(self._task_id)

    def _construct_message(self, message: str) -> str:
        return sanitize_output(message, self._max_width - PROGRESS_WIDTH - len(self._prefix))

    def __enter__(self) -> "ProgressHandle":
        return self

    def __exit__(self, *_exc) -> None:
        self.finish()


class ProgressGroup:
    """Sibling progress handles rendered together on the printer's console."""

    def __init__(self, printer: "Printer") -> None:
        self._printer = printer
        self._handles: List[ProgressHandle] = []
        self._progress = Progress(
            TextColumn("{task.fields[indent]}", markup=False),
            TextColumn("{task.fields[prefix]}", style="bold", markup=False),
            _BarOrSpinnerColumn(),
            TextColumn("{task.description}", markup=False),
            console=printer.console,
            transient=False,
        )
        self._started = False

    @property
    def handles(self) -> List[ProgressHandle]:
        return list(self._handles)

    def start(self) -> None:
        with self._printer.lock:
            if self._started:
                return
            self._started = True
            self._progress.start()

    def stop(self) -> None:
        with self._printer.lock:
            for handle in self._handles:
                handle.finish()
            if not self._started:
                return
            self._started = False
            self._progress.stop()

    def add_progress(
        self,
        prefix: str,
        total: Optional[int] = None,
        ending_message: Optional[str] = None,
    ) -> ProgressHandle:
        with self._printer.lock:
            indent = self._printer.indent
            # Bars line up on the left; spinners follow the printer's indent.
            task_id = self._progress.add_task(
                "",
                total=total,
                indent=" " * indent if total is None else "",
                prefix=f"{prefix}:",
            )
            handle = ProgressHandle(
                lock=self._printer.lock,
                progress=self._progress,
                task_id=task_id,
                prefix=prefix,
                total=total,
                level=self._printer.level,
                indent=indent,
                max_width=self._printer.max_width,
                ending_message=ending_message,
            )
            self._handles.append(handle)
            return handle

    def __enter__(self) -> "ProgressGroup":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        self.stop()
