from __future__ import annotations

from dataclasses import dataclass, field
import logging
from threading import Lock, Thread
from typing import Dict, Iterable, List, Optional

from termreport.command_runner import CommandRunner, SubprocessCommandRunner
from termreport.errors import BatchError
from termreport.monitor import DEFAULT_POLL_INTERVAL
from termreport.printer import Printer
from termreport.process_spec import ProcessSpec
from termreport.progress import ProgressHandle


@dataclass
class BatchRunner:
    """Queue of process specs grouped by key.

    Keys run concurrently, each on its own progress handle; specs sharing a
    key run one after the other in the order they were added. A failing spec
    stops the remaining specs of its key only.
    """

    runner: CommandRunner = field(default_factory=SubprocessCommandRunner)
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __post_init__(self) -> None:
        self._logger = logging.getLogger("termreport").getChild(self.__class__.__name__)
        self._lock = Lock()
        self._queue: Dict[str, List[ProcessSpec]] = {}

    def add(self, key: str, specs: Iterable[ProcessSpec]) -> None:
        with self._lock:
            self._queue.setdefault(key, []).extend(specs)

    def pending(self) -> Dict[str, List[ProcessSpec]]:
        with self._lock:
            return {key: list(specs) for key, specs in self._queue.items()}

    def is_empty(self) -> bool:
        with self._lock:
            return not self._queue

    def execute(self, printer: Printer, name: str = "batch") -> Dict[str, List[Optional[str]]]:
        # Take the whole queue up front; a batch runs once.
        with self._lock:
            queue, self._queue = self._queue, {}
        if not queue:
            self._logger.debug("Batch %s has nothing to run", name)
            return {}

        outputs: Dict[str, List[Optional[str]]] = {key: [] for key in queue}
        failures: Dict[str, Exception] = {}
        results_lock = Lock()

        def run_key(key: str, specs: List[ProcessSpec], progress: ProgressHandle) -> None:
            for spec in specs:
                try:
                    output = progress.execute_process(
                        spec, runner=self.runner, poll_interval=self.poll_interval
                    )
                except Exception as exc:
                    self._logger.warning("Batch key %s failed: %s", key, exc)
                    progress.set_ending_message("failed")
                    with results_lock:
                        failures[key] = exc
                    return
                with results_lock:
                    outputs[key].append(output)
            progress.set_ending_message("done")

        self._logger.info("Running batch %s with %s keys", name, len(queue))
        with printer.section(name):
            with printer.multi_progress() as group:
                workers = []
                for key, specs in queue.items():
                    progress = group.add_progress(key)
                    worker = Thread(
                        target=run_key,
                        args=(key, specs, progress),
                        name=f"batch-{key}",
                        daemon=True,
                    )
                    workers.append((worker, progress))
                for worker, _ in workers:
                    worker.start()
                for worker, progress in workers:
                    worker.join()
                    progress.finish()

        if failures:
            raise BatchError(failures, outputs)
        return outputs
