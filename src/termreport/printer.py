from __future__ import annotations

from pathlib import Path
from threading import RLock
from typing import Any, Callable, Optional, Union

from rich.console import Console
from rich.text import Text

from termreport.command_runner import CommandRunner, ProcessHandle
from termreport.errors import InternalError
from termreport.levels import Level, format_log
from termreport.monitor import DEFAULT_POLL_INTERVAL, ProcessMonitor, start_process
from termreport.process_spec import ProcessSpec
from termreport.progress import ProgressGroup
from termreport.terminal import FileTerm, null_console, stdout_console
from termreport.values import Array, Null, Object, Value, scalar_text, to_value

INDENT_WIDTH = 2


class Section:
    """Indents everything written until the section is closed."""

    def __init__(self, printer: "Printer", name: str) -> None:
        self.printer = printer
        with printer.lock:
            printer.write(Text.assemble(" " * printer.indent, (name, "bold"), ":\n"))
            printer._shift_right()
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.printer._shift_left()

    def __enter__(self) -> "Printer":
        return self.printer

    def __exit__(self, *_exc) -> None:
        self.close()


class Heading:
    """Markdown-style heading; depth 1 is rendered as a top-level title."""

    def __init__(self, printer: "Printer", name: str) -> None:
        self.printer = printer
        with printer.lock:
            printer.newline()
            depth = printer._enter_heading()
            style = "bold yellow" if depth == 1 else "bold"
            printer.write(Text(f"{'#' * depth} {name}", style=style))
            printer.newline()
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.printer._exit_heading()

    def __enter__(self) -> "Printer":
        return self.printer

    def __exit__(self, *_exc) -> None:
        self.close()


class Printer:
    def __init__(
        self,
        console: Console,
        level: Level = Level.INFO,
        *,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self.console = console
        self.level = level
        self.lock = RLock()
        self._indent = 0
        self._heading_count = 0
        self._on_close = on_close

    @classmethod
    def new_stdout(cls, level: Level = Level.INFO) -> "Printer":
        return cls(stdout_console(), level)

    @classmethod
    def new_file(cls, path: Union[str, Path], level: Level = Level.INFO) -> "Printer":
        term = FileTerm(path)
        return cls(term.console, level, on_close=term.close)

    @classmethod
    def new_null(cls, level: Level = Level.INFO) -> "Printer":
        return cls(null_console(), level)

    @property
    def indent(self) -> int:
        return self._indent

    @property
    def heading_count(self) -> int:
        return self._heading_count

    @property
    def max_width(self) -> int:
        return max(self.console.width - 1, 1)

    def close(self) -> None:
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close()

    def write(self, text: Union[str, Text]) -> None:
        with self.lock:
            if isinstance(text, str):
                text = Text(text)
            self.console.print(text, end="", soft_wrap=True)

    def newline(self) -> None:
        self.write("\n")

    def section(self, name: str) -> Section:
        return Section(self, name)

    def heading(self, name: str) -> Heading:
        return Heading(self, name)

    def multi_progress(self) -> ProgressGroup:
        return ProgressGroup(self)

    def emit(self, level: Level, name: str, value: Any) -> None:
        if level < self.level:
            return
        self.object(name, value, style=_NAME_STYLES.get(level, "bold"))

    def trace(self, name: str, value: Any) -> None:
        self.emit(Level.TRACE, name, value)

    def debug(self, name: str, value: Any) -> None:
        self.emit(Level.DEBUG, name, value)

    def message(self, name: str, value: Any) -> None:
        self.emit(Level.MESSAGE, name, value)

    def info(self, name: str, value: Any) -> None:
        self.emit(Level.INFO, name, value)

    def warning(self, name: str, value: Any) -> None:
        self.emit(Level.WARNING, name, value)

    def error(self, name: str, value: Any) -> None:
        self.emit(Level.ERROR, name, value)

    def log(self, level: Level, message: str) -> None:
        if level < self.level:
            return
        with self.lock:
            self.write(format_log(self._indent, self.max_width, level, message))

    def code_block(self, name: str, content: str) -> None:
        self.write(f"```{name}\n{content}```\n")

    def object(self, name: str, value: Any, *, style: str = "bold") -> None:
        tree = to_value(value)
        show_null = self.level <= Level.MESSAGE
        if isinstance(tree, Null) and not show_null:
            return
        # Hold the lock for the whole tree so concurrent emitters never interleave.
        with self.lock:
            self.write(Text.assemble(" " * self._indent, (name, style), ": "))
            self._print_value(tree, self._indent, show_null=show_null)

    def _print_value(self, value: Value, indent: int, *, show_null: bool) -> None:
        child_indent = indent + INDENT_WIDTH
        if isinstance(value, Object):
            self.write("\n")
            for key, child in value.fields:
                if isinstance(child, Null) and not show_null:
                    continue
                self.write(Text.assemble(" " * child_indent, (key, "bold"), ": "))
                self._print_value(child, child_indent, show_null=show_null)
        elif isinstance(value, Array):
            self.write("\n")
            for index, child in enumerate(value.items):
                self.write(f"{' ' * child_indent}[{index}]: ")
                self._print_value(child, child_indent, show_null=show_null)
        else:
            self.write(f"{scalar_text(value)}\n")

    def start_process(
        self, spec: ProcessSpec, runner: Optional[CommandRunner] = None
    ) -> ProcessHandle:
        self.info("execute", spec.full_command())
        if spec.working_directory is not None:
            self.info("directory", spec.working_directory)
        return start_process(spec, runner)

    def execute_process(
        self,
        spec: ProcessSpec,
        *,
        runner: Optional[CommandRunner] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> Optional[str]:
        with self.section(spec.program):
            process = self.start_process(spec, runner)
            with self.multi_progress() as group:
                with group.add_progress(spec.label) as progress:
                    monitor = ProcessMonitor(
                        spec=spec,
                        process=process,
                        progress=progress,
                        poll_interval=poll_interval,
                    )
                    return monitor.run()

    def _shift_right(self) -> None:
        with self.lock:
            self._indent += INDENT_WIDTH

    def _shift_left(self) -> None:
        with self.lock:
            if self._indent < INDENT_WIDTH:
                raise InternalError("Internal Error: indent underflow")
            self._indent -= INDENT_WIDTH

    def _enter_heading(self) -> int:
        with self.lock:
            self._heading_count += 1
            return self._heading_count

    def _exit_heading(self) -> None:
        with self.lock:
            if self._heading_count == 0:
                raise InternalError("Internal Error: heading underflow")
            self._heading_count -= 1


_NAME_STYLES = {
    Level.WARNING: "bold yellow",
    Level.ERROR: "bold red",
}
