#!/usr/bin/env python3
"""Run the delivery pipeline locally for one push event."""

import argparse
import json
import logging
import sys
import tempfile
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

sys.path.insert(0, str(Path(__file__).parent.parent))

from spa_hosting.config import Config
from spa_hosting.errors import ConfigError
from spa_hosting.runtime.deploy import ArtifactDeployer
from spa_hosting.runtime.pipeline import DeliveryPipelineRunner, RunHistory
from spa_hosting.runtime.secrets import lookup_secret
from spa_hosting.runtime.stages import GitCheckout, ToolchainBuild
from spa_hosting.runtime.trigger import PushEvent, TriggerFilter


def get_distribution_id(stack_name: str, region: str) -> str:
  """Read the distribution ID from the deployed site stack outputs."""
  cfn = boto3.client("cloudformation", region_name=region)
  try:
    stack = cfn.describe_stacks(StackName=stack_name)["Stacks"][0]
  except ClientError as e:
    raise ConfigError(f"Stack {stack_name} is not deployed: {e}") from e
  for output in stack.get("Outputs", []):
    if output["OutputKey"].endswith("DistributionId"):
      return str(output["OutputValue"])
  raise ConfigError(f"Stack {stack_name} has no DistributionId output")


def main() -> None:
  """Main entry point."""
  parser = argparse.ArgumentParser(description="Run the SPA delivery pipeline locally")
  parser.add_argument("domain", help="Configured site domain")
  parser.add_argument("--config", default="sites.yaml", help="Sites YAML (default: sites.yaml)")
  parser.add_argument("--repo", required=True, help="Pushed repository (owner/name)")
  parser.add_argument("--branch", required=True, help="Pushed branch")
  parser.add_argument("--commit", default="", help="Pushed commit SHA")
  parser.add_argument("--history", default="pipeline-runs.json", help="Run history file")
  parser.add_argument("--workdir", help="Working directory (default: a temp dir)")

  args = parser.parse_args()
  logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

  try:
    site = Config.from_yaml(args.config).site(args.domain)
    if site.pipeline is None:
      raise ConfigError(f"{site.domain} has no pipeline configured")
    distribution_id = get_distribution_id(site.stack_name, site.region)
  except ConfigError as e:
    print(f"Error: {e}", file=sys.stderr)
    sys.exit(1)

  pipeline = site.pipeline
  workdir = Path(args.workdir or tempfile.mkdtemp(prefix="spa-pipeline-"))
  runner = DeliveryPipelineRunner(
    TriggerFilter(repo=pipeline.repo, branch=pipeline.branch),
    checkout=GitCheckout(
      pipeline.oauth_secret_name,
      workdir,
      secret_lookup=lambda name: lookup_secret(name, region=site.region),
    ),
    build=ToolchainBuild(
      workdir,
      build_spec_path=pipeline.build_spec_path,
      artifact_dir=pipeline.artifact_dir,
    ),
    deploy=ArtifactDeployer(
      site.domain,
      distribution_id,
      prune=site.prune_stale_objects,
      s3_client=boto3.client("s3", region_name=site.region),
    ),
    history=RunHistory(args.history),
  )

  run = runner.handle(PushEvent(repo=args.repo, branch=args.branch, commit=args.commit))
  if run is None:
    print(f"Push to {args.repo}@{args.branch} does not trigger {pipeline.repo}@{pipeline.branch}")
    return

  print(json.dumps(run.to_dict(), indent=2))
  if run.status != "succeeded":
    sys.exit(1)


if __name__ == "__main__":
  main()
