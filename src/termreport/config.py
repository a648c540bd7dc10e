from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from termreport.levels import Level
from termreport.process_spec import ProcessSpec

CONFIG_FILE_NAME = "termreport.yml"


class ConfigError(ValueError):
    """Raised when configuration loading or validation fails."""


@dataclass(frozen=True)
class PrinterConfig:
    level: Level


@dataclass(frozen=True)
class MonitorConfig:
    poll_interval_ms: int

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000


@dataclass(frozen=True)
class LoggingConfig:
    file_path: Optional[str]


@dataclass(frozen=True)
class BatchConfig:
    name: str
    jobs: Dict[str, List[ProcessSpec]]


@dataclass(frozen=True)
class AppConfig:
    printer: PrinterConfig
    monitor: MonitorConfig
    logging: LoggingConfig
    batch: BatchConfig


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at root of config file: {path}")
    return data


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section {name} must be a mapping")
    return value


class ConfigLoader:
    def __init__(self, root_dir: Path | None = None) -> None:
        self._root_dir = root_dir

    def load(self) -> AppConfig:
        root_dir = self._resolve_root_dir()
        config_path = root_dir / CONFIG_FILE_NAME
        if not config_path.exists():
            raise ConfigError(f"Missing base config file: {config_path}")

        merged = _load_yaml(config_path)

        config_d = root_dir / "config.d"
        if config_d.exists():
            for path in sorted(config_d.glob("*.yml")):
                merged = _deep_merge(merged, _load_yaml(path))

        return self._build_config(merged, root_dir)

    def _resolve_root_dir(self) -> Path:
        if self._root_dir is not None:
            return self._root_dir
        env_dir = os.getenv("TERMREPORT_CONFIG_DIR")
        if env_dir:
            return Path(env_dir)
        return Path.cwd()

    def _build_config(self, data: Dict[str, Any], root_dir: Path) -> AppConfig:
        printer_data = _section(data, "printer")
        monitor_data = _section(data, "monitor")
        logging_data = _section(data, "logging")
        batch_data = _section(data, "batch")

        try:
            level = Level.parse(str(printer_data.get("level", "info")))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        try:
            poll_interval_ms = int(monitor_data.get("poll_interval_ms", 100))
        except (TypeError, ValueError) as exc:
            raise ConfigError("monitor.poll_interval_ms must be an integer") from exc
        if poll_interval_ms <= 0:
            raise ConfigError(f"monitor.poll_interval_ms must be positive: {poll_interval_ms}")

        file_path = logging_data.get("file_path")
        jobs_data = batch_data.get("jobs") or {}
        if not isinstance(jobs_data, dict):
            raise ConfigError("batch.jobs must be a mapping of key to job list")

        jobs = {
            str(key): self._build_jobs(str(key), entries, root_dir)
            for key, entries in jobs_data.items()
        }
        return AppConfig(
            printer=PrinterConfig(level=level),
            monitor=MonitorConfig(poll_interval_ms=poll_interval_ms),
            logging=LoggingConfig(file_path=str(file_path) if file_path else None),
            batch=BatchConfig(name=str(batch_data.get("name", "batch")), jobs=jobs),
        )

    def _build_jobs(self, key: str, entries: Any, root_dir: Path) -> List[ProcessSpec]:
        if not isinstance(entries, list):
            raise ConfigError(f"batch.jobs.{key} must be a list")
        specs = []
        for index, entry in enumerate(entries):
            where = f"batch.jobs.{key}[{index}]"
            if not isinstance(entry, dict):
                raise ConfigError(f"{where} must be a mapping")
            program = entry.get("program")
            if not program:
                raise ConfigError(f"{where} is missing program")
            arguments = entry.get("arguments") or []
            if not isinstance(arguments, list):
                raise ConfigError(f"{where}.arguments must be a list")
            environment = entry.get("environment") or {}
            if not isinstance(environment, dict):
                raise ConfigError(f"{where}.environment must be a mapping")
            specs.append(
                ProcessSpec(
                    program=str(program),
                    arguments=[str(arg) for arg in arguments],
                    working_directory=self._resolve_path(entry.get("working_directory"), root_dir),
                    environment=environment,
                    log_file_path=self._resolve_path(entry.get("log_file_path"), root_dir),
                    return_stdout=bool(entry.get("return_stdout", False)),
                    label=str(entry.get("label", "working")),
                )
            )
        return specs

    def _resolve_path(self, value: Any, root_dir: Path) -> Optional[str]:
        # Relative paths in a config file are relative to its directory.
        if value is None:
            return None
        path = Path(str(value))
        if path.is_absolute():
            return str(path)
        return str(root_dir / path)
