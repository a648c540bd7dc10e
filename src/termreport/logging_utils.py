from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


class LoggerFactory:
    @staticmethod
    def create(
        name: str,
        log_file: Optional[Union[str, Path]] = None,
        level: int = logging.INFO,
        console: Optional[Console] = None,
    ) -> logging.Logger:
        logger = logging.getLogger(name)
        if logger.handlers:
            return logger

        logger.setLevel(level)
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s"
        )

        if console is not None:
            # Share the printer's console so records land above live progress bars.
            stream_handler: logging.Handler = RichHandler(
                console=console, show_path=False, markup=False
            )
            stream_handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
        else:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

        if log_file is not None:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        return logger
