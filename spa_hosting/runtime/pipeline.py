"""Delivery pipeline run state machine.

A run moves idle -> checking_out -> building -> deploying -> idle, or to the
terminal failed state from any active state. Every transition is recorded in
the run and in the persisted run history. Runs never share artifacts: each
stage consumes only the artifact produced by the previous stage of the same
run.
"""

import contextlib
import fcntl
import json
import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import InvalidTransitionError, PipelineStageError
from .artifacts import Artifact
from .trigger import PushEvent, TriggerFilter

logger = logging.getLogger(__name__)


class RunState(str, Enum):
  IDLE = "idle"
  CHECKING_OUT = "checking_out"
  BUILDING = "building"
  DEPLOYING = "deploying"
  FAILED = "failed"


VALID_TRANSITIONS: dict[RunState, set[RunState]] = {
  RunState.IDLE: {RunState.CHECKING_OUT},
  RunState.CHECKING_OUT: {RunState.BUILDING, RunState.FAILED},
  RunState.BUILDING: {RunState.DEPLOYING, RunState.FAILED},
  RunState.DEPLOYING: {RunState.IDLE, RunState.FAILED},
  RunState.FAILED: set(),  # terminal
}

STAGE_NAMES = {
  RunState.CHECKING_OUT: "checkout",
  RunState.BUILDING: "build",
  RunState.DEPLOYING: "deploy",
}


@dataclass(frozen=True)
class StageTransition:
  """One observable state change of a run."""

  run_id: str
  from_state: RunState
  to_state: RunState
  stage: str | None = None
  error: str | None = None
  at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

  def to_dict(self) -> dict[str, Any]:
    data = asdict(self)
    data["from_state"] = self.from_state.value
    data["to_state"] = self.to_state.value
    return data


class PipelineRun:
  """A single, fresh execution of the pipeline for one push event."""

  def __init__(
    self,
    event: PushEvent,
    *,
    run_id: str | None = None,
    listeners: Iterable[Callable[["PipelineRun", StageTransition], None]] = (),
  ) -> None:
    self.run_id = run_id or uuid.uuid4().hex[:12]
    self.event = event
    self.state = RunState.IDLE
    self.transitions: list[StageTransition] = []
    self.artifacts: dict[str, Artifact] = {}
    self.failed_stage: str | None = None
    self.error: str | None = None
    self._listeners = list(listeners)

  @property
  def active(self) -> bool:
    return self.state in STAGE_NAMES

  @property
  def succeeded(self) -> bool:
    return (
      self.state == RunState.IDLE
      and bool(self.transitions)
      and self.transitions[-1].from_state == RunState.DEPLOYING
    )

  @property
  def status(self) -> str:
    if self.state == RunState.FAILED:
      return "failed"
    if self.succeeded:
      return "succeeded"
    return "in_progress" if self.active else "pending"

  def transition(self, target: RunState, *, error: str | None = None) -> StageTransition:
    """Move to ``target`` if the current state allows it."""
    allowed = VALID_TRANSITIONS[self.state]
    if target not in allowed:
      raise InvalidTransitionError(
        f"Run {self.run_id} cannot go from {self.state.value} to {target.value}. "
        f"Allowed: {sorted(s.value for s in allowed)}"
      )

    stage = STAGE_NAMES.get(target) or STAGE_NAMES.get(self.state)
    record = StageTransition(
      run_id=self.run_id,
      from_state=self.state,
      to_state=target,
      stage=stage,
      error=error,
    )
    self.transitions.append(record)
    self.state = target
    logger.info(
      "Run %s: %s -> %s%s",
      self.run_id,
      record.from_state.value,
      record.to_state.value,
      f" ({error})" if error else "",
    )

    for listener in self._listeners:
      listener(self, record)
    return record

  def fail(self, error: Exception | str) -> StageTransition:
    """Record the failure of the current stage and stop the run."""
    if not self.active:
      raise InvalidTransitionError(f"Run {self.run_id} is {self.state.value}, no stage to fail")
    self.failed_stage = STAGE_NAMES.get(self.state)
    self.error = str(error)
    return self.transition(RunState.FAILED, error=self.error)

  def to_dict(self) -> dict[str, Any]:
    return {
      "run_id": self.run_id,
      "repo": self.event.repo,
      "branch": self.event.branch,
      "commit": self.event.commit,
      "state": self.state.value,
      "status": self.status,
      "failed_stage": self.failed_stage,
      "error": self.error,
      "transitions": [t.to_dict() for t in self.transitions],
    }


class RunHistory:
  """Run status history, persisted as JSON when a path is given.

  Several processes may share one history file. Every write re-reads the file
  under an exclusive lock on a sidecar ``.lock`` file and merges into it, so
  runs recorded elsewhere are never dropped.
  """

  def __init__(self, path: Path | str | None = None) -> None:
    self.path = Path(path) if path else None
    self._lock = threading.Lock()
    self._runs: dict[str, dict[str, Any]] = {}
    if self.path:
      self._runs = self._load()

  def record(self, run: PipelineRun, transition: StageTransition) -> None:
    data = run.to_dict()
    with self._lock:
      self._runs[run.run_id] = data
      if self.path is None:
        return
      with self._file_lock():
        runs = self._load()
        runs[run.run_id] = data
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
          json.dump(list(runs.values()), f, indent=2)
        tmp.replace(self.path)
      self._runs = runs

  def get(self, run_id: str) -> dict[str, Any]:
    return self._snapshot()[run_id]

  def runs(self) -> list[dict[str, Any]]:
    return list(self._snapshot().values())

  def _snapshot(self) -> dict[str, dict[str, Any]]:
    with self._lock:
      if self.path:
        with self._file_lock():
          self._runs = {**self._runs, **self._load()}
      return dict(self._runs)

  def _load(self) -> dict[str, dict[str, Any]]:
    assert self.path is not None
    if not self.path.exists():
      return {}
    with open(self.path) as f:
      return {run["run_id"]: run for run in json.load(f)}

  @contextlib.contextmanager
  def _file_lock(self) -> Iterator[None]:
    assert self.path is not None
    self.path.parent.mkdir(parents=True, exist_ok=True)
    with open(self.path.with_suffix(self.path.suffix + ".lock"), "a") as lock:
      fcntl.flock(lock, fcntl.LOCK_EX)
      try:
        yield
      finally:
        fcntl.flock(lock, fcntl.LOCK_UN)


CheckoutStep = Callable[[PushEvent, str], Artifact]
BuildStep = Callable[[Artifact, str], Artifact]
DeployStep = Callable[[Artifact], Any]


class DeliveryPipelineRunner:
  """Starts a fresh run for every matching push and drives it to the end.

  Runs are independent: concurrent runs are allowed and never wait on one
  another. Failed stages are not retried; a new push starts a new run.
  """

  def __init__(
    self,
    trigger: TriggerFilter,
    *,
    checkout: CheckoutStep,
    build: BuildStep,
    deploy: DeployStep,
    history: RunHistory | None = None,
  ) -> None:
    self.trigger = trigger
    self._checkout = checkout
    self._build = build
    self._deploy = deploy
    self.history = history or RunHistory()

  def handle(self, event: PushEvent) -> PipelineRun | None:
    """Run the pipeline for ``event`` if it matches the trigger."""
    run = self._start(event)
    return self.execute(run) if run is not None else None

  def dispatch(self, events: Iterable[PushEvent], *, max_workers: int = 4) -> list[PipelineRun]:
    """Handle several events concurrently; ignored events are dropped.

    An unexpected error in one run marks that run failed and is logged. It
    never hides the results of the other runs.
    """
    runs = [run for run in map(self._start, events) if run is not None]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
      futures = [(run, pool.submit(self.execute, run)) for run in runs]
    for run, future in futures:
      error = future.exception()
      if error is not None:
        logger.error("Run %s failed unexpectedly: %r", run.run_id, error)
    return runs

  def _start(self, event: PushEvent) -> PipelineRun | None:
    if not self.trigger.matches(event):
      logger.info("Ignoring push to %s@%s", event.repo, event.branch)
      return None
    return PipelineRun(event, listeners=[self.history.record])

  def execute(self, run: PipelineRun) -> PipelineRun:
    try:
      run.transition(RunState.CHECKING_OUT)
      source = self._claim(run, self._checkout(run.event, run.run_id))

      run.transition(RunState.BUILDING)
      built = self._claim(run, self._build(source, run.run_id))

      run.transition(RunState.DEPLOYING)
      self._deploy(built)

      run.transition(RunState.IDLE)
    except PipelineStageError as e:
      run.fail(e.reason)
    except Exception as e:
      if run.active:
        run.fail(e)
      raise
    return run

  def _claim(self, run: PipelineRun, artifact: Artifact) -> Artifact:
    stage = STAGE_NAMES[run.state]
    if artifact.run_id != run.run_id:
      raise InvalidTransitionError(
        f"Run {run.run_id}: {stage} produced an artifact of run {artifact.run_id}"
      )
    run.artifacts[stage] = artifact
    return artifact
