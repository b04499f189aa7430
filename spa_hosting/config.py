"""Configuration loader for single-page application sites."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml
from aws_cdk import RemovalPolicy
from aws_cdk import aws_codebuild as codebuild

from .errors import ConfigError

BUILD_IMAGES = {
  "standard-5.0": codebuild.LinuxBuildImage.STANDARD_5_0,
  "standard-6.0": codebuild.LinuxBuildImage.STANDARD_6_0,
  "standard-7.0": codebuild.LinuxBuildImage.STANDARD_7_0,
  "amazon-linux-2-4": codebuild.LinuxBuildImage.AMAZON_LINUX_2_4,
}

DEFAULT_BUILD_IMAGE = "standard-7.0"
CERTIFICATE_REGION = "us-east-1"


@dataclass
class PipelineConfig:
  """Source repository and build settings for the delivery pipeline."""

  repo_owner: str
  repo_name: str
  branch: str = "main"
  oauth_secret_name: str = "github-token"
  build_image: str = DEFAULT_BUILD_IMAGE
  build_spec_path: str = "buildspec.yml"
  artifact_dir: str = "build"

  @property
  def repo(self) -> str:
    return f"{self.repo_owner}/{self.repo_name}"

  @property
  def linux_build_image(self) -> codebuild.IBuildImage:
    return BUILD_IMAGES[self.build_image]


@dataclass
class SiteConfig:
  """Configuration for a single SPA site."""

  domain: str
  owner: str = ""
  email: str = ""
  hosted_zone_id: str | None = None
  hosted_zone_name: str | None = None
  artifact_source_dir: str | None = None
  prune_stale_objects: bool = False
  removal_policy: RemovalPolicy = RemovalPolicy.RETAIN
  region: str = CERTIFICATE_REGION
  pipeline: PipelineConfig | None = None

  @property
  def stack_name(self) -> str:
    return f"SpaSite-{self.domain.replace('.', '-')}"

  @property
  def zone_name(self) -> str:
    """Hosted zone authoritative for the domain (the domain or a parent)."""
    return self.hosted_zone_name or self.domain


@dataclass
class Config:
  """Multi-site configuration."""

  sites: list[SiteConfig] = field(default_factory=list)

  def site(self, domain: str) -> SiteConfig:
    """Return the site configured for ``domain``."""
    for site in self.sites:
      if site.domain == domain:
        return site
    raise ConfigError(f"No site configured for {domain}")

  @classmethod
  def from_yaml(cls, path: Path | str = "sites.yaml") -> "Config":
    """Load configuration from YAML file."""
    with open(path) as f:
      data = yaml.safe_load(f) or {}

    defaults = data.get("defaults", {})
    sites: list[SiteConfig] = []

    for site_data in data.get("sites", []):
      # Merge defaults with site-specific config
      merged = {**defaults, **site_data}

      domain = str(merged.get("domain") or "").strip().lower()
      if not domain:
        raise ConfigError("Every site needs a non-empty 'domain'")

      # Convert removal_policy string to enum
      removal_policy_str = merged.pop("removal_policy", "retain")
      removal_policy = {
        "retain": RemovalPolicy.RETAIN,
        "destroy": RemovalPolicy.DESTROY,
      }.get(str(removal_policy_str).lower())
      if removal_policy is None:
        raise ConfigError(f"{domain}: unknown removal_policy {removal_policy_str!r}")

      # CloudFront only accepts certificates issued in us-east-1
      region = str(merged.get("region", CERTIFICATE_REGION))
      if region != CERTIFICATE_REGION:
        raise ConfigError(f"{domain}: region must be {CERTIFICATE_REGION}, got {region!r}")

      zone_name = merged.get("hosted_zone_name")
      if zone_name:
        zone_name = str(zone_name).strip().rstrip(".").lower()
        if domain != zone_name and not domain.endswith(f".{zone_name}"):
          raise ConfigError(f"{domain}: not inside hosted zone {zone_name}")

      sites.append(
        SiteConfig(
          domain=domain,
          owner=merged.get("owner", ""),
          email=merged.get("email", ""),
          hosted_zone_id=merged.get("hosted_zone_id"),
          hosted_zone_name=zone_name or None,
          artifact_source_dir=merged.get("artifact_source_dir"),
          prune_stale_objects=_parse_bool(
            domain, "prune_stale_objects", merged.get("prune_stale_objects", False)
          ),
          removal_policy=removal_policy,
          region=region,
          pipeline=_parse_pipeline(domain, merged.get("pipeline")),
        )
      )

    return cls(sites=sites)


def _parse_bool(domain: str, key: str, value: object) -> bool:
  if isinstance(value, bool):
    return value
  text = str(value).strip().lower()
  if text in ("true", "yes", "on", "1"):
    return True
  if text in ("false", "no", "off", "0", ""):
    return False
  raise ConfigError(f"{domain}: {key} must be true or false, got {value!r}")


def _parse_pipeline(domain: str, data: dict | None) -> PipelineConfig | None:
  if not data:
    return None

  for key in ("repo_owner", "repo_name", "branch"):
    if not data.get(key):
      raise ConfigError(f"{domain}: pipeline requires '{key}'")

  build_image = data.get("build_image", DEFAULT_BUILD_IMAGE)
  if build_image not in BUILD_IMAGES:
    raise ConfigError(
      f"{domain}: unknown build_image {build_image!r} "
      f"(expected one of {', '.join(sorted(BUILD_IMAGES))})"
    )

  return PipelineConfig(
    repo_owner=data["repo_owner"],
    repo_name=data["repo_name"],
    branch=data["branch"],
    oauth_secret_name=data.get("oauth_secret_name", "github-token"),
    build_image=build_image,
    build_spec_path=data.get("build_spec_path", "buildspec.yml"),
    artifact_dir=data.get("artifact_dir", "build"),
  )
