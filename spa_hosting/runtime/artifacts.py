"""Artifacts passed between pipeline stages."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Artifact:
  """Directory produced by one stage of a run and consumed by the next."""

  name: str
  path: Path
  stage: str
  run_id: str

  def files(self) -> list[Path]:
    """Every regular file in the artifact, sorted by relative path."""
    return sorted(p for p in self.path.rglob("*") if p.is_file())
