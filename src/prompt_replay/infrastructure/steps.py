"""
Durable steps

A run is split into named steps. A completed step's result is checkpointed,
so when the scheduler re-delivers the same event every finished step is
skipped and only the failed or pending ones execute again.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar

from prompt_replay.infrastructure.blob_store import safe_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CheckpointStore(Protocol):
    """Externally owned storage for completed step results"""

    def load(self) -> dict[str, Any]:
        ...

    def save(self, step_name: str, result: Any) -> None:
        ...


class InMemoryCheckpointStore:
    """Checkpoints that live as long as the process (no event id to key on)"""

    def __init__(self) -> None:
        self._steps: dict[str, Any] = {}

    def load(self) -> dict[str, Any]:
        return dict(self._steps)

    def save(self, step_name: str, result: Any) -> None:
        self._steps[step_name] = result


class FileCheckpointStore:
    """One JSON file per run key; results must be JSON-serializable"""

    def __init__(self, directory: str, run_key: str) -> None:
        self.path = Path(directory) / f"{safe_key(run_key)}.json"
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable checkpoint file %s", self.path)
            return {}

    def save(self, step_name: str, result: Any) -> None:
        with self._lock:
            steps = self.load()
            steps[step_name] = result
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(steps, ensure_ascii=False, default=str))
            tmp.replace(self.path)


class StepRunner:
    """Runs each named step at most once per checkpoint store"""

    def __init__(self, store: CheckpointStore | None = None) -> None:
        self._store = store or InMemoryCheckpointStore()
        self._completed = self._store.load()

    def run(self, name: str, fn: Callable[[], T]) -> T:
        """
        Execute a step unless it already completed

        Args:
            name: Step name, unique within the run
            fn: Step body; its return value is checkpointed

        Returns:
            The step result (fresh or from the checkpoint)

        Raises:
            Exception: Whatever fn raises; nothing is checkpointed in that case
        """
        if name in self._completed:
            logger.info("Step '%s' already completed, using checkpoint", name)
            return self._completed[name]

        result = fn()
        self._store.save(name, result)
        self._completed[name] = result
        return result


def create_step_runner(checkpoint_dir: str, event_id: str | None) -> StepRunner:
    """Durable runner keyed by event id, or an in-memory one when there is none"""
    if event_id:
        return StepRunner(FileCheckpointStore(checkpoint_dir, event_id))
    return StepRunner(InMemoryCheckpointStore())
