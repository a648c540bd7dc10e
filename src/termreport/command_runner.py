from __future__ import annotations

from dataclasses import dataclass
import io
import os
import subprocess
from typing import IO, Optional, Protocol

from termreport.process_spec import ProcessSpec


class ProcessHandle(Protocol):
    stdout: Optional[IO[str]]
    stderr: Optional[IO[str]]

    def poll(self) -> int | None:
        ...

    def wait(self, timeout: float | None = None) -> int:
        ...

    def terminate(self) -> None:
        ...


class CommandRunner(Protocol):
    def spawn(self, spec: ProcessSpec) -> ProcessHandle:
        ...


@dataclass
class SubprocessCommandRunner:
    encoding: str = "utf-8"

    def spawn(self, spec: ProcessSpec) -> ProcessHandle:
        env = dict(os.environ)
        env.update(spec.environment)
        # Both streams go to pipes; the monitor drains them line by line.
        process = subprocess.Popen(
            [spec.program, *spec.arguments],
            cwd=spec.working_directory,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        # Only "\n" ends a line; a bare "\r" stays inside it untranslated.
        process.stdout = self._text_pipe(process.stdout)
        process.stderr = self._text_pipe(process.stderr)
        return process

    def _text_pipe(self, pipe: IO[bytes]) -> IO[str]:
        return io.TextIOWrapper(pipe, encoding=self.encoding, errors="replace", newline="\n")
