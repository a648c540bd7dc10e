import io
import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session):
    """Ensure src/ is on sys.path for local test runs."""
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


class CapturedPrinter:
    def __init__(self, printer, buffer: io.StringIO) -> None:
        self.printer = printer
        self._buffer = buffer

    @property
    def output(self) -> str:
        return self._buffer.getvalue()


@pytest.fixture
def capture_printer():
    """Build printers whose console writes plain text into a buffer."""
    from rich.console import Console

    from termreport.levels import Level
    from termreport.printer import Printer

    def factory(level=Level.INFO, width: int = 120) -> CapturedPrinter:
        buffer = io.StringIO()
        console = Console(
            file=buffer,
            width=width,
            force_terminal=False,
            color_system=None,
            highlight=False,
            soft_wrap=True,
        )
        return CapturedPrinter(Printer(console, level), buffer)

    return factory
