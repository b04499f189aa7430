"""Tests for the delivery pipeline run state machine."""

import json
import threading
from pathlib import Path

import pytest

from spa_hosting.errors import BuildError, DeployError, InvalidTransitionError, SourceFetchError
from spa_hosting.runtime.artifacts import Artifact
from spa_hosting.runtime.pipeline import (
  DeliveryPipelineRunner,
  PipelineRun,
  RunHistory,
  RunState,
)
from spa_hosting.runtime.trigger import PushEvent, TriggerFilter

PUSH = PushEvent(repo="acme/webapp", branch="main", commit="abc123")


class FakeStages:
  """Records which artifacts each stage was handed."""

  def __init__(self, tmp_path: Path) -> None:
    self.tmp_path = tmp_path
    self.built_from: dict[str, Artifact] = {}
    self.deployed: list[Artifact] = []
    self.fail_checkout = False
    self.fail_build = False
    self.fail_deploy = False
    self._lock = threading.Lock()

  def checkout(self, event: PushEvent, run_id: str) -> Artifact:
    if self.fail_checkout:
      raise SourceFetchError("authentication failed")
    path = self.tmp_path / run_id / "source"
    path.mkdir(parents=True)
    (path / "COMMIT").write_text(event.commit)
    return Artifact(name="source", path=path, stage="checkout", run_id=run_id)

  def build(self, source: Artifact, run_id: str) -> Artifact:
    with self._lock:
      self.built_from[run_id] = source
    if self.fail_build:
      raise BuildError("`npm run build` exited with status 1")
    path = self.tmp_path / run_id / "build"
    path.mkdir(parents=True)
    (path / "index.html").write_text((source.path / "COMMIT").read_text())
    return Artifact(name="build", path=path, stage="build", run_id=run_id)

  def deploy(self, artifact: Artifact) -> None:
    if self.fail_deploy:
      raise DeployError("Upload of index.html failed")
    with self._lock:
      self.deployed.append(artifact)


@pytest.fixture
def stages(tmp_path: Path) -> FakeStages:
  return FakeStages(tmp_path)


@pytest.fixture
def runner(stages: FakeStages) -> DeliveryPipelineRunner:
  return DeliveryPipelineRunner(
    TriggerFilter(repo="acme/webapp", branch="main"),
    checkout=stages.checkout,
    build=stages.build,
    deploy=stages.deploy,
  )


class TestPipelineRun:
  """Test the transition table."""

  def test_success_path(self) -> None:
    run = PipelineRun(PUSH)
    for state in (RunState.CHECKING_OUT, RunState.BUILDING, RunState.DEPLOYING, RunState.IDLE):
      run.transition(state)

    assert run.succeeded
    assert run.status == "succeeded"
    assert [t.stage for t in run.transitions] == ["checkout", "build", "deploy", "deploy"]

  def test_cannot_skip_stages(self) -> None:
    run = PipelineRun(PUSH)
    run.transition(RunState.CHECKING_OUT)

    with pytest.raises(InvalidTransitionError, match="checking_out to deploying"):
      run.transition(RunState.DEPLOYING)

  def test_failed_is_terminal(self) -> None:
    run = PipelineRun(PUSH)
    run.transition(RunState.CHECKING_OUT)
    run.fail("boom")

    assert run.failed_stage == "checkout"
    with pytest.raises(InvalidTransitionError):
      run.transition(RunState.CHECKING_OUT)

  def test_cannot_fail_while_idle(self) -> None:
    with pytest.raises(InvalidTransitionError):
      PipelineRun(PUSH).fail("nothing is running")

  def test_listeners_observe_every_transition(self) -> None:
    seen = []
    run = PipelineRun(PUSH, listeners=[lambda r, t: seen.append((t.from_state, t.to_state))])
    run.transition(RunState.CHECKING_OUT)
    run.transition(RunState.FAILED)

    assert seen == [
      (RunState.IDLE, RunState.CHECKING_OUT),
      (RunState.CHECKING_OUT, RunState.FAILED),
    ]


class TestDeliveryPipelineRunner:
  """Test driving runs through the stages."""

  def test_push_to_main_runs_all_stages(
    self, runner: DeliveryPipelineRunner, stages: FakeStages
  ) -> None:
    run = runner.handle(PUSH)

    assert run is not None
    assert [(t.from_state, t.to_state) for t in run.transitions] == [
      (RunState.IDLE, RunState.CHECKING_OUT),
      (RunState.CHECKING_OUT, RunState.BUILDING),
      (RunState.BUILDING, RunState.DEPLOYING),
      (RunState.DEPLOYING, RunState.IDLE),
    ]
    assert run.status == "succeeded"
    assert stages.deployed == [run.artifacts["build"]]
    assert (stages.deployed[0].path / "index.html").read_text() == "abc123"

  def test_other_branch_is_ignored(
    self, runner: DeliveryPipelineRunner, stages: FakeStages
  ) -> None:
    assert runner.handle(PushEvent(repo="acme/webapp", branch="dev", commit="x")) is None
    assert runner.handle(PushEvent(repo="acme/other", branch="main", commit="x")) is None
    assert runner.history.runs() == []

  def test_checkout_failure(self, runner: DeliveryPipelineRunner, stages: FakeStages) -> None:
    stages.fail_checkout = True

    run = runner.handle(PUSH)

    assert run is not None
    assert run.state == RunState.FAILED
    assert run.failed_stage == "checkout"
    assert run.error == "authentication failed"
    assert stages.built_from == {}

  def test_build_failure_leaves_storage_unchanged(
    self, runner: DeliveryPipelineRunner, stages: FakeStages
  ) -> None:
    stages.fail_build = True

    run = runner.handle(PUSH)

    assert run is not None
    assert run.status == "failed"
    assert run.failed_stage == "build"
    assert stages.deployed == []

  def test_deploy_failure_keeps_build_artifact(
    self, runner: DeliveryPipelineRunner, stages: FakeStages
  ) -> None:
    """A failed deploy does not undo the successful build."""
    stages.fail_deploy = True

    run = runner.handle(PUSH)

    assert run is not None
    assert run.failed_stage == "deploy"
    assert run.artifacts["build"].path.exists()

  def test_artifact_from_another_run_is_rejected(self, stages: FakeStages) -> None:
    other = Artifact(name="source", path=stages.tmp_path, stage="checkout", run_id="other")
    runner = DeliveryPipelineRunner(
      TriggerFilter(repo="acme/webapp", branch="main"),
      checkout=lambda event, run_id: other,
      build=stages.build,
      deploy=stages.deploy,
    )

    with pytest.raises(InvalidTransitionError, match="other"):
      runner.handle(PUSH)
    assert stages.built_from == {}
    assert runner.history.runs()[0]["status"] == "failed"

  def test_unexpected_error_fails_run_and_propagates(self, stages: FakeStages) -> None:
    def broken_build(source: Artifact, run_id: str) -> Artifact:
      raise OSError("disk full")

    runner = DeliveryPipelineRunner(
      TriggerFilter(repo="acme/webapp", branch="main"),
      checkout=stages.checkout,
      build=broken_build,
      deploy=stages.deploy,
    )

    with pytest.raises(OSError):
      runner.handle(PUSH)
    (record,) = runner.history.runs()
    assert record["failed_stage"] == "build"

  def test_concurrent_runs_use_their_own_artifacts(
    self, runner: DeliveryPipelineRunner, stages: FakeStages
  ) -> None:
    events = [PushEvent(repo="acme/webapp", branch="main", commit=f"c{i}") for i in range(6)]

    runs = runner.dispatch(events, max_workers=3)

    assert len(runs) == 6
    assert all(run.status == "succeeded" for run in runs)
    for run in runs:
      assert stages.built_from[run.run_id] == run.artifacts["checkout"]
      assert (run.artifacts["build"].path / "index.html").read_text() == run.event.commit
    assert len({run.run_id for run in runs}) == 6

  def test_unexpected_error_in_one_run_keeps_the_others(self, stages: FakeStages) -> None:
    """A crash in one concurrent run is recorded on that run only."""

    def checkout(event: PushEvent, run_id: str) -> Artifact:
      if event.commit == "bad":
        raise OSError("disk full")
      return stages.checkout(event, run_id)

    runner = DeliveryPipelineRunner(
      TriggerFilter(repo="acme/webapp", branch="main"),
      checkout=checkout,
      build=stages.build,
      deploy=stages.deploy,
    )
    events = [
      PushEvent(repo="acme/webapp", branch="main", commit="good"),
      PushEvent(repo="acme/webapp", branch="main", commit="bad"),
    ]

    runs = runner.dispatch(events, max_workers=2)

    statuses = {run.event.commit: run.status for run in runs}
    assert statuses == {"good": "succeeded", "bad": "failed"}
    (bad,) = [run for run in runs if run.event.commit == "bad"]
    assert bad.failed_stage == "checkout"
    assert "disk full" in (bad.error or "")
    assert len(stages.deployed) == 1


class TestRunHistory:
  """Test persisted run status."""

  def test_persists_and_reloads(self, stages: FakeStages, tmp_path: Path) -> None:
    path = tmp_path / "history" / "runs.json"
    stages.fail_build = True
    runner = DeliveryPipelineRunner(
      TriggerFilter(repo="acme/webapp", branch="main"),
      checkout=stages.checkout,
      build=stages.build,
      deploy=stages.deploy,
      history=RunHistory(path),
    )

    run = runner.handle(PUSH)
    assert run is not None

    saved = json.loads(path.read_text())
    assert saved[0]["run_id"] == run.run_id
    assert saved[0]["failed_stage"] == "build"
    assert saved[0]["transitions"][-1]["to_state"] == "failed"

    reloaded = RunHistory(path)
    assert reloaded.get(run.run_id)["status"] == "failed"
    assert reloaded.get(run.run_id)["commit"] == "abc123"

  def test_separate_histories_on_one_file_keep_every_run(self, tmp_path: Path) -> None:
    """Two writers sharing a history file never erase each other's runs."""
    path = tmp_path / "runs.json"
    first = RunHistory(path)
    second = RunHistory(path)

    run_a = PipelineRun(PUSH, run_id="run-a", listeners=[first.record])
    run_b = PipelineRun(PUSH, run_id="run-b", listeners=[second.record])
    run_a.transition(RunState.CHECKING_OUT)
    run_b.transition(RunState.CHECKING_OUT)
    run_a.fail("authentication failed")

    saved = {run["run_id"]: run for run in json.loads(path.read_text())}
    assert set(saved) == {"run-a", "run-b"}
    assert saved["run-a"]["failed_stage"] == "checkout"
    assert saved["run-b"]["state"] == "checking_out"
    assert {run["run_id"] for run in second.runs()} == {"run-a", "run-b"}
    assert first.get("run-b")["status"] == "in_progress"
