from __future__ import annotations

from typing import Dict, List, Optional


class TermReportError(RuntimeError):
    """Base class for failures raised while reporting or running processes."""


class InternalError(TermReportError):
    """Raised when an invariant of the library itself is broken."""


class WorkingDirectoryError(TermReportError):
    def __init__(self, directory: str) -> None:
        super().__init__(f"Directory does not exist: {directory}")
        self.directory = directory


class SpawnError(TermReportError):
    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"Failed to start process {command}: {reason}")
        self.command = command


class LogFileError(TermReportError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to create log file {path}: {reason}")
        self.path = path


class ProcessFailedError(TermReportError):
    def __init__(self, exit_code: Optional[int], stderr: str) -> None:
        if exit_code is None:
            message = f"Command failed with unknown exit code: {stderr}"
        else:
            message = f"Command failed with exit code: {exit_code} : {stderr}"
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class ProcessCancelledError(TermReportError):
    def __init__(self, command: str, stderr: str) -> None:
        super().__init__(f"Command cancelled: {command}")
        self.command = command
        self.stderr = stderr


class BatchError(TermReportError):
    def __init__(
        self,
        failures: Dict[str, Exception],
        outputs: Dict[str, List[Optional[str]]],
    ) -> None:
        keys = ", ".join(sorted(failures))
        super().__init__(f"Batch failed for: {keys}")
        self.failures = failures
        self.outputs = outputs
