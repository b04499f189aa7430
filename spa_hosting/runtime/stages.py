"""Local executors for the checkout and build stages."""

import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import yaml

from ..errors import BuildError, SecretNotFoundError, SourceFetchError
from .artifacts import Artifact
from .secrets import lookup_secret
from .trigger import PushEvent

logger = logging.getLogger(__name__)

BUILDSPEC_PHASES = ("install", "pre_build", "build", "post_build")


class GitCheckout:
  """Clones the pushed commit over HTTPS with a token from Secrets Manager."""

  def __init__(
    self,
    secret_name: str,
    workdir: Path | str,
    *,
    host: str = "github.com",
    secret_lookup: Callable[[str], str] = lookup_secret,
    git: str = "git",
  ) -> None:
    self.secret_name = secret_name
    self.workdir = Path(workdir)
    self.host = host
    self._lookup_secret = secret_lookup
    self._git = git

  def __call__(self, event: PushEvent, run_id: str) -> Artifact:
    try:
      token = self._lookup_secret(self.secret_name)
    except SecretNotFoundError as e:
      raise SourceFetchError(str(e)) from e

    dest = self.workdir / run_id / "source"
    if dest.exists():
      shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    url = f"https://x-access-token:{token}@{self.host}/{event.repo}.git"
    self._run(
      ["clone", "--quiet", "--branch", event.branch, "--single-branch", url, str(dest)],
      token=token,
    )
    if event.commit:
      self._run(["-C", str(dest), "checkout", "--quiet", event.commit], token=token)

    logger.info("Checked out %s@%s (%s) into %s", event.repo, event.branch, event.commit, dest)
    return Artifact(name="source", path=dest, stage="checkout", run_id=run_id)

  def _run(self, args: list[str], *, token: str) -> None:
    proc = subprocess.run(
      [self._git, *args],
      capture_output=True,
      text=True,
      env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    if proc.returncode != 0:
      # Never echo the token back into logs or run history
      stderr = proc.stderr.strip().replace(token, "***")
      raise SourceFetchError(f"git {args[0]} failed: {stderr}")


class ToolchainBuild:
  """Runs a CodeBuild-style buildspec against an ephemeral copy of the source.

  The build sees only its own copy of the checkout; the output directory is
  copied out as the build artifact.
  """

  def __init__(
    self,
    workdir: Path | str,
    *,
    build_spec_path: str = "buildspec.yml",
    artifact_dir: str = "build",
    env: dict[str, str] | None = None,
  ) -> None:
    self.workdir = Path(workdir)
    self.build_spec_path = build_spec_path
    self.artifact_dir = artifact_dir
    self.env = env

  def __call__(self, source: Artifact, run_id: str) -> Artifact:
    run_dir = self.workdir / run_id
    workspace = run_dir / "workspace"
    if workspace.exists():
      shutil.rmtree(workspace)
    shutil.copytree(source.path, workspace, ignore=shutil.ignore_patterns(".git"))

    try:
      spec = self.load_build_spec(workspace)
      self._run(self.commands(spec), workspace)

      base_dir = str((spec.get("artifacts") or {}).get("base-directory") or self.artifact_dir)
      output = (workspace / base_dir).resolve()
      if not output.is_relative_to(workspace.resolve()):
        raise BuildError(f"Output directory {base_dir} is outside the build workspace")
      if not output.is_dir():
        raise BuildError(f"Build did not produce output directory {base_dir}")

      dest = run_dir / "build"
      if dest.exists():
        shutil.rmtree(dest)
      shutil.copytree(output, dest)
    finally:
      shutil.rmtree(workspace, ignore_errors=True)

    logger.info("Build for run %s produced %s", run_id, dest)
    return Artifact(name="build", path=dest, stage="build", run_id=run_id)

  def load_build_spec(self, workspace: Path) -> dict:
    path = workspace / self.build_spec_path
    if not path.is_file():
      raise BuildError(f"Build spec {self.build_spec_path} not found in source")
    try:
      with open(path) as f:
        spec = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
      raise BuildError(f"Build spec {self.build_spec_path} is not valid YAML: {e}") from e
    if not isinstance(spec, dict):
      raise BuildError(f"Build spec {self.build_spec_path} must be a mapping")
    return spec

  @staticmethod
  def commands(spec: dict) -> list[str]:
    """Commands of every buildspec phase, in execution order."""
    phases = spec.get("phases") or {}
    commands: list[str] = []
    for phase in BUILDSPEC_PHASES:
      commands.extend(str(c) for c in (phases.get(phase) or {}).get("commands") or [])
    return commands

  def _run(self, commands: list[str], cwd: Path) -> None:
    """Run every command in one shell session that stops at the first failure.

    Like CodeBuild, a `cd` or `export` in one command carries over to the
    commands after it, across phases.
    """
    if not commands:
      return
    for command in commands:
      logger.info("$ %s", command)
    env = self.env
    if env is None:
      env = {"PATH": os.environ.get("PATH", ""), "HOME": str(cwd)}
    script = "\n".join(["set -e", *commands])
    proc = subprocess.run(script, shell=True, cwd=cwd, env=env)
    if proc.returncode != 0:
      raise BuildError(f"Build commands exited with status {proc.returncode}")
