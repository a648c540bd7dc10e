from __future__ import annotations

from enum import IntEnum

from rich.text import Text


class Level(IntEnum):
    TRACE = 0
    DEBUG = 1
    MESSAGE = 2
    INFO = 3
    WARNING = 4
    ERROR = 5
    SILENT = 6

    def __str__(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, name: str) -> "Level":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown level: {name}") from None


def format_log(indent: int, max_width: int, level: Level, message: str) -> Text:
    """Render one log record, padded to the full line width."""
    line = Text.assemble(" " * indent, (str(level), "bold"), f": {message}")
    if len(line) < max_width:
        line.append(" " * (max_width - len(line)))
    line.append("\n")
    return line
