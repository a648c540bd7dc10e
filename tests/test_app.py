from __future__ import annotations

import json
from pathlib import Path
import sys

from termreport.app import _config_summary, main
from termreport.config import ConfigLoader
from termreport.levels import Level


def _write_config(root: Path, jobs: str, level: str = "info") -> None:
    root.mkdir(parents=True, exist_ok=True)
    content = f"""
printer:
  level: {level}
monitor:
  poll_interval_ms: 10
batch:
  name: "build"
  jobs:
{jobs}
"""
    (root / "termreport.yml").write_text(content, encoding="utf-8")


def _job(script: str, **extra) -> str:
    lines = [
        f"      - program: {json.dumps(sys.executable)}",
        f"        arguments: [\"-c\", {json.dumps(script)}]",
    ]
    for key, value in extra.items():
        lines.append(f"        {key}: {json.dumps(value)}")
    return "\n".join(lines)


def test_main_runs_configured_batch(tmp_path: Path, capture_printer) -> None:
    marker = tmp_path / "ran.txt"
    jobs = "    compile:\n" + _job(f"open({str(marker)!r}, 'w').write('yes')")
    _write_config(tmp_path / "config", jobs)
    captured = capture_printer()

    code = main(["--config", str(tmp_path / "config")], printer=captured.printer)

    assert code == 0
    assert marker.read_text() == "yes"
    assert "# build" in captured.output
    assert "build:" in captured.output
    assert captured.printer.heading_count == 0
    assert captured.printer.indent == 0


def test_main_reports_captured_output(tmp_path: Path, capture_printer) -> None:
    jobs = "    version:\n" + _job("print('1.2.3')", return_stdout=True)
    _write_config(tmp_path, jobs)
    captured = capture_printer()

    code = main(["--config", str(tmp_path)], printer=captured.printer)

    assert code == 0
    assert "output:" in captured.output
    assert "1.2.3" in captured.output


def test_main_returns_one_when_a_key_fails(tmp_path: Path, capture_printer) -> None:
    jobs = "    broken:\n" + _job("import sys; sys.stderr.write('nope\\n'); sys.exit(4)")
    _write_config(tmp_path, jobs)
    captured = capture_printer()

    code = main(["--config", str(tmp_path)], printer=captured.printer)

    assert code == 1
    assert "failed:" in captured.output
    assert "exit code: 4" in captured.output
    assert captured.printer.heading_count == 0


def test_main_dry_run_does_not_execute(tmp_path: Path, capture_printer) -> None:
    marker = tmp_path / "ran.txt"
    jobs = "    compile:\n" + _job(f"open({str(marker)!r}, 'w').write('yes')")
    _write_config(tmp_path, jobs)
    captured = capture_printer()

    code = main(["--config", str(tmp_path), "--dry-run"], printer=captured.printer)

    assert code == 0
    assert not marker.exists()
    assert "compile:" in captured.output
    assert "[0]:" in captured.output


def test_main_level_flag_overrides_config(tmp_path: Path, capture_printer) -> None:
    (tmp_path / "termreport.yml").write_text(
        "printer:\n  level: info\nbatch:\n  name: build\n  jobs: {}\n", encoding="utf-8"
    )
    captured = capture_printer()

    code = main(["--config", str(tmp_path), "--level", "debug"], printer=captured.printer)

    assert code == 0
    assert captured.printer.level is Level.DEBUG
    assert "config:" in captured.output


def test_main_returns_two_on_config_error(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "missing")]) == 2


def test_main_returns_two_on_unknown_level_flag(tmp_path: Path) -> None:
    (tmp_path / "termreport.yml").write_text("batch:\n  jobs: {}\n", encoding="utf-8")

    assert main(["--config", str(tmp_path), "--level", "shouty"]) == 2


def test_config_summary_lists_commands(tmp_path: Path) -> None:
    jobs = "    compile:\n" + _job("print(1)")
    _write_config(tmp_path, jobs)
    config = ConfigLoader(root_dir=tmp_path).load()

    summary = _config_summary(config)

    assert summary["monitor"]["poll_interval_ms"] == 10
    assert summary["batch"]["jobs"]["compile"][0].startswith(sys.executable)
