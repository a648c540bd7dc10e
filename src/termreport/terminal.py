from __future__ import annotations

from pathlib import Path
from typing import IO, Optional, Union

from rich.console import Console

FILE_TERM_WIDTH = 2048
NULL_TERM_WIDTH = 128


def stdout_console() -> Console:
    return Console(highlight=False, soft_wrap=True)


def null_console() -> Console:
    # Quiet consoles accept every write and render nothing.
    return Console(quiet=True, width=NULL_TERM_WIDTH, highlight=False, soft_wrap=True)


class FileTerm:
    """Plain-text terminal that writes everything to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        try:
            self._file: Optional[IO[str]] = self.path.open("w", encoding="utf-8")
        except OSError as exc:
            raise OSError(f"Failed to create file: {self.path}") from exc
        self.console = Console(
            file=self._file,
            width=FILE_TERM_WIDTH,
            force_terminal=False,
            color_system=None,
            highlight=False,
            soft_wrap=True,
        )

    def close(self) -> None:
        if self._file is None:
            return
        self._file.flush()
        self._file.close()
        self._file = None

    def __enter__(self) -> "FileTerm":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
