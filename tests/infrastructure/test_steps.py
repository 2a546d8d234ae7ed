"""
Tests for durable steps
"""

import pytest
from unittest.mock import MagicMock

from prompt_replay.infrastructure.steps import (
    FileCheckpointStore,
    InMemoryCheckpointStore,
    StepRunner,
    create_step_runner,
)


class TestStepRunner:
    """Tests for StepRunner.run()"""

    def test_runs_and_returns_result(self):
        runner = StepRunner()
        fn = MagicMock(return_value={"eval_id": "e1"})

        assert runner.run("init-run", fn) == {"eval_id": "e1"}
        fn.assert_called_once()

    def test_completed_step_is_skipped(self):
        store = InMemoryCheckpointStore()
        StepRunner(store).run("create-eval-trace", lambda: "trace-1")

        fn = MagicMock(return_value="trace-2")
        assert StepRunner(store).run("create-eval-trace", fn) == "trace-1"
        fn.assert_not_called()

    def test_failed_step_is_not_checkpointed(self):
        store = InMemoryCheckpointStore()
        runner = StepRunner(store)

        with pytest.raises(RuntimeError):
            runner.run("run-evaluations", MagicMock(side_effect=RuntimeError("boom")))

        assert "run-evaluations" not in store.load()
        assert runner.run("run-evaluations", lambda: [1]) == [1]

    def test_none_result_is_checkpointed(self):
        store = InMemoryCheckpointStore()
        StepRunner(store).run("store-results-blob", lambda: None)

        fn = MagicMock()
        assert StepRunner(store).run("store-results-blob", fn) is None
        fn.assert_not_called()


class TestFileCheckpointStore:
    """Tests for FileCheckpointStore"""

    def test_persists_across_instances(self, tmp_path):
        store = FileCheckpointStore(str(tmp_path), "evt/1")
        store.save("init-run", {"eval_id": "e1"})
        store.save("create-eval-trace", "trace-1")

        reloaded = FileCheckpointStore(str(tmp_path), "evt/1")
        assert reloaded.load() == {"init-run": {"eval_id": "e1"}, "create-eval-trace": "trace-1"}
        assert reloaded.path.name == "evt-1.json"

    def test_missing_file_is_empty(self, tmp_path):
        assert FileCheckpointStore(str(tmp_path), "none").load() == {}

    def test_unreadable_file_is_ignored(self, tmp_path):
        store = FileCheckpointStore(str(tmp_path), "broken")
        store.path.write_text("{not json")
        assert store.load() == {}


class TestCreateStepRunner:
    """Tests for create_step_runner()"""

    def test_event_id_gives_durable_runner(self, tmp_path):
        create_step_runner(str(tmp_path), "evt-7").run("init-run", lambda: "first")
        assert create_step_runner(str(tmp_path), "evt-7").run("init-run", lambda: "second") == "first"

    def test_no_event_id_gives_fresh_runner(self, tmp_path):
        create_step_runner(str(tmp_path), None).run("init-run", lambda: "first")
        assert create_step_runner(str(tmp_path), None).run("init-run", lambda: "second") == "second"
        assert list(tmp_path.iterdir()) == []
