from __future__ import annotations

from pathlib import Path

import pytest

from termreport.config import ConfigError, ConfigLoader
from termreport.levels import Level


def _write_yaml(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


BASE_CONFIG = """
printer:
  level: debug

monitor:
  poll_interval_ms: 50

logging:
  file_path: "logs/termreport.log"

batch:
  name: "build"
  jobs:
    compile:
      - program: "make"
        arguments: ["all", 2]
        working_directory: "src"
        environment:
          CC: "clang"
        log_file_path: "logs/make.log"
      - program: "make"
        arguments: ["install"]
        return_stdout: true
    docs:
      - program: "sphinx-build"
"""


def test_loads_base_config(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", BASE_CONFIG)

    config = ConfigLoader(root_dir=tmp_path).load()

    assert config.printer.level is Level.DEBUG
    assert config.monitor.poll_interval_ms == 50
    assert config.monitor.poll_interval_seconds == pytest.approx(0.05)
    assert config.logging.file_path == "logs/termreport.log"
    assert config.batch.name == "build"
    assert list(config.batch.jobs) == ["compile", "docs"]

    first, second = config.batch.jobs["compile"]
    assert first.program == "make"
    assert first.arguments == ("all", "2")
    assert first.working_directory == str(tmp_path / "src")
    assert dict(first.environment) == {"CC": "clang"}
    assert first.log_file_path == str(tmp_path / "logs" / "make.log")
    assert first.return_stdout is False
    assert second.working_directory is None
    assert second.return_stdout is True


def test_defaults_apply_when_sections_missing(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", "batch:\n  jobs: {}\n")

    config = ConfigLoader(root_dir=tmp_path).load()

    assert config.printer.level is Level.INFO
    assert config.monitor.poll_interval_ms == 100
    assert config.logging.file_path is None
    assert config.batch.name == "batch"
    assert config.batch.jobs == {}


def test_config_d_overrides_in_name_order(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", BASE_CONFIG)
    _write_yaml(tmp_path / "config.d" / "10-level.yml", "printer:\n  level: warning\n")
    _write_yaml(tmp_path / "config.d" / "20-level.yml", "printer:\n  level: error\n")

    config = ConfigLoader(root_dir=tmp_path).load()

    assert config.printer.level is Level.ERROR
    assert config.monitor.poll_interval_ms == 50


def test_env_var_selects_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "termreport.yml", BASE_CONFIG)
    monkeypatch.setenv("TERMREPORT_CONFIG_DIR", str(tmp_path))

    config = ConfigLoader().load()

    assert config.batch.name == "build"


def test_missing_base_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Missing base config file"):
        ConfigLoader(root_dir=tmp_path).load()


def test_non_mapping_root_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", "- just\n- a list\n")

    with pytest.raises(ConfigError, match="Expected mapping"):
        ConfigLoader(root_dir=tmp_path).load()


def test_unknown_level_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", "printer:\n  level: loud\n")

    with pytest.raises(ConfigError, match="Unknown level"):
        ConfigLoader(root_dir=tmp_path).load()


def test_non_positive_poll_interval_raises(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "termreport.yml", "monitor:\n  poll_interval_ms: 0\n")

    with pytest.raises(ConfigError, match="poll_interval_ms"):
        ConfigLoader(root_dir=tmp_path).load()


def test_job_without_program_raises(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "termreport.yml",
        "batch:\n  jobs:\n    build:\n      - arguments: [all]\n",
    )

    with pytest.raises(ConfigError, match=r"batch.jobs.build\[0\] is missing program"):
        ConfigLoader(root_dir=tmp_path).load()


def test_job_list_must_be_a_list(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "termreport.yml",
        "batch:\n  jobs:\n    build:\n      program: make\n",
    )

    with pytest.raises(ConfigError, match="must be a list"):
        ConfigLoader(root_dir=tmp_path).load()


def test_environment_must_be_a_mapping(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "termreport.yml",
        "batch:\n  jobs:\n    build:\n      - program: make\n        environment: [CC]\n",
    )

    with pytest.raises(ConfigError, match="environment must be a mapping"):
        ConfigLoader(root_dir=tmp_path).load()
