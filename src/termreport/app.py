from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from termreport.batch import BatchRunner
from termreport.config import AppConfig, ConfigError, ConfigLoader
from termreport.errors import BatchError
from termreport.levels import Level
from termreport.logging_utils import LoggerFactory
from termreport.printer import Printer


def main(argv: Optional[Iterable[str]] = None, printer: Optional[Printer] = None) -> int:
    args = _parse_args(argv)
    try:
        config_dir = Path(args.config) if args.config else None
        config = ConfigLoader(root_dir=config_dir).load()
        level = Level.parse(args.level) if args.level else config.printer.level
    except (ConfigError, ValueError) as exc:
        logger = LoggerFactory.create("termreport")
        logger.error("Config error: %s", exc)
        return 2

    printer = printer or Printer.new_stdout(level)
    printer.level = level
    log_path = os.getenv("TERMREPORT_LOG_PATH") or config.logging.file_path
    logger = LoggerFactory.create(
        "termreport",
        log_file=log_path,
        level=logging.DEBUG if level <= Level.DEBUG else logging.INFO,
        console=printer.console,
    )
    printer.debug("config", _config_summary(config))

    jobs = config.batch.jobs
    with printer.heading(config.batch.name):
        if args.dry_run:
            # Dry-run only shows what would be executed.
            for key, specs in jobs.items():
                printer.info(key, [spec.full_command_in_working_directory() for spec in specs])
            logger.info("Dry-run mode enabled; %s keys not executed", len(jobs))
            return 0

        runner = BatchRunner(poll_interval=config.monitor.poll_interval_seconds)
        for key, specs in jobs.items():
            runner.add(key, specs)
        try:
            outputs = runner.execute(printer, name=config.batch.name)
        except BatchError as exc:
            printer.error("failed", {key: str(error) for key, error in exc.failures.items()})
            logger.error("Batch %s failed: %s", config.batch.name, exc)
            return 1

    captured = {
        key: [output for output in values if output is not None]
        for key, values in outputs.items()
    }
    captured = {key: values for key, values in captured.items() if values}
    if captured:
        printer.info("output", captured)
    logger.info("Batch %s complete", config.batch.name)
    return 0


def _config_summary(config: AppConfig) -> dict:
    return {
        "printer": {"level": config.printer.level},
        "monitor": {"poll_interval_ms": config.monitor.poll_interval_ms},
        "logging": {"file_path": config.logging.file_path},
        "batch": {
            "name": config.batch.name,
            "jobs": {
                key: [spec.full_command() for spec in specs]
                for key, specs in config.batch.jobs.items()
            },
        },
    }


def _parse_args(argv: Optional[Iterable[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a batch of commands with live progress")
    parser.add_argument("--config", help="Directory containing termreport.yml")
    parser.add_argument(
        "--level",
        help="Output level: trace, debug, message, info, warning, error or silent",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the commands that would run without executing them",
    )
    return parser.parse_args(argv)


if __name__ == "__main__":
    raise SystemExit(main())
