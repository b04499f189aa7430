#!/usr/bin/env python3
"""CDK application entry point for SPA hosting infrastructure."""

import sys
from pathlib import Path

# Add the project root to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import aws_cdk as cdk
import boto3

from spa_hosting.config import Config
from spa_hosting.stacks.site_stack import SpaSiteStack


def get_account_id() -> str:
  """Get AWS account ID from current credentials."""
  sts = boto3.client("sts")
  return str(sts.get_caller_identity()["Account"])


def main() -> None:
  """Create CDK app with a stack for each configured site."""
  app = cdk.App()

  # Load configuration
  config_path = app.node.try_get_context("config") or "sites.yaml"
  config = Config.from_yaml(Path(config_path))

  # Hosted zone lookups need an explicit account
  account_id = get_account_id()

  for site in config.sites:
    SpaSiteStack(
      app,
      site.stack_name,
      site_config=site,
      env=cdk.Environment(
        account=account_id,
        region=site.region,
      ),
      description=f"SPA hosting and delivery pipeline for {site.domain}",
    )

  app.synth()


if __name__ == "__main__":
  main()
