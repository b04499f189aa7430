#!/usr/bin/env python3
"""Upload a local build to a site bucket and invalidate its distribution."""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import boto3

sys.path.insert(0, str(Path(__file__).parent.parent))

from spa_hosting.errors import SpaHostingError
from spa_hosting.runtime.deploy import ArtifactDeployer


def main() -> None:
  """Main entry point."""
  parser = argparse.ArgumentParser(
    description="Sync a build directory into an SPA bucket and invalidate /*"
  )
  parser.add_argument("bucket", help="Origin bucket name (the site domain)")
  parser.add_argument("distribution_id", help="CloudFront distribution ID")
  parser.add_argument("artifact_dir", help="Local build output directory")
  parser.add_argument(
    "--prune",
    action="store_true",
    help="Delete objects that are not part of the build",
  )
  parser.add_argument(
    "--region",
    default="us-east-1",
    help="AWS region (default: us-east-1)",
  )

  args = parser.parse_args()
  logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

  deployer = ArtifactDeployer(
    args.bucket,
    args.distribution_id,
    prune=args.prune,
    s3_client=boto3.client("s3", region_name=args.region),
  )
  try:
    result = deployer.deploy(args.artifact_dir)
  except SpaHostingError as e:
    print(f"Error deploying {args.artifact_dir}: {e}", file=sys.stderr)
    sys.exit(1)

  print(json.dumps(asdict(result), indent=2))


if __name__ == "__main__":
  main()
