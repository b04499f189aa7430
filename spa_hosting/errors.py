"""Error taxonomy for provisioning and pipeline runs."""


class SpaHostingError(Exception):
  """Base class for every error raised by this package."""


class ConfigError(SpaHostingError):
  """Site configuration is missing a required key or has an invalid value."""


class GraphOrderError(SpaHostingError):
  """A provisioning node names an input that is not declared before it."""


class ResolutionError(SpaHostingError):
  """No authoritative hosted zone exists for the domain."""


class ValidationTimeout(SpaHostingError):
  """The certificate did not reach ISSUED within the allowed time."""


class RecordConflictError(SpaHostingError):
  """A record for the same name and type exists and is not ours."""


class ReconciliationConflict(SpaHostingError):
  """Deployed resources were modified outside of the provisioning declaration."""

  def __init__(self, stack_name: str, drifted: list[str]) -> None:
    super().__init__(f"Stack {stack_name} has drifted resources: {', '.join(drifted)}")
    self.stack_name = stack_name
    self.drifted = drifted


class SecretNotFoundError(SpaHostingError):
  """A secret could not be resolved by name."""


class InvalidTransitionError(SpaHostingError):
  """A pipeline run was asked to make a transition its state does not allow."""


class PipelineStageError(SpaHostingError):
  """A pipeline stage failed; ``stage`` names the failing stage."""

  stage = ""

  def __init__(self, message: str) -> None:
    super().__init__(f"[{self.stage}] {message}")
    self.reason = message


class SourceFetchError(PipelineStageError):
  """Checkout could not authenticate or find the repository/branch."""

  stage = "checkout"


class BuildError(PipelineStageError):
  """The build toolchain exited non-zero or produced no output directory."""

  stage = "build"


class DeployError(PipelineStageError):
  """Uploading the build artifact to the origin bucket failed."""

  stage = "deploy"
