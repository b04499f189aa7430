"""Push events and the filter deciding which of them start a run."""

from dataclasses import dataclass
from typing import Any

BRANCH_REF_PREFIX = "refs/heads/"


@dataclass(frozen=True)
class PushEvent:
  """Source-control push: ``repo`` is ``owner/name``."""

  repo: str
  branch: str
  commit: str

  @classmethod
  def from_github_payload(cls, payload: dict[str, Any]) -> "PushEvent":
    """Build an event from a GitHub ``push`` webhook payload."""
    ref = payload.get("ref", "")
    branch = ref[len(BRANCH_REF_PREFIX):] if ref.startswith(BRANCH_REF_PREFIX) else ref
    return cls(
      repo=payload.get("repository", {}).get("full_name", ""),
      branch=branch,
      commit=payload.get("after", ""),
    )


@dataclass(frozen=True)
class TriggerFilter:
  """Accepts only pushes to the configured repository and branch."""

  repo: str
  branch: str

  def matches(self, event: PushEvent) -> bool:
    # GitHub treats owner/repo case-insensitively, branches are case-sensitive
    return event.repo.lower() == self.repo.lower() and event.branch == self.branch
