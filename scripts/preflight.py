#!/usr/bin/env python3
"""Check live AWS state before (or after) deploying a site stack."""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spa_hosting.errors import SpaHostingError
from spa_hosting.runtime.preflight import (
  check_alias_conflict,
  check_stack_drift,
  resolve_hosted_zone,
  wait_for_certificate,
)


def main() -> None:
  """Main entry point."""
  parser = argparse.ArgumentParser(description="Preflight checks for an SPA site")
  parser.add_argument("domain", help="Site domain (e.g., example.com)")
  parser.add_argument(
    "--distribution-domain",
    help="CloudFront domain an existing alias record may already point at",
  )
  parser.add_argument(
    "--certificate-arn",
    help="Wait until this certificate is issued",
  )
  parser.add_argument(
    "--stack-name",
    help="Run drift detection on this deployed stack",
  )
  parser.add_argument(
    "--timeout",
    type=float,
    default=1800,
    help="Seconds to wait for certificate issuance (default: 1800)",
  )

  args = parser.parse_args()
  logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

  try:
    zone = resolve_hosted_zone(args.domain)
    check_alias_conflict(
      zone.zone_id,
      args.domain,
      distribution_domain=args.distribution_domain,
    )
    if args.certificate_arn:
      wait_for_certificate(args.certificate_arn, timeout=args.timeout)
    if args.stack_name:
      check_stack_drift(args.stack_name)
  except SpaHostingError as e:
    print(f"{type(e).__name__}: {e}", file=sys.stderr)
    sys.exit(1)

  print(f"{args.domain}: hosted zone {zone.zone_id} OK")


if __name__ == "__main__":
  main()
