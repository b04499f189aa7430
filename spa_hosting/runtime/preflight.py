"""Read-only checks run before and after applying the site stack.

CloudFormation reconciles the declared resources, but some failures are only
visible against live AWS state: a missing hosted zone, a DNS record owned by
someone else, a certificate stuck in validation, or resources edited by hand.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import (
  ReconciliationConflict,
  RecordConflictError,
  ResolutionError,
  SpaHostingError,
  ValidationTimeout,
)

logger = logging.getLogger(__name__)

CERTIFICATE_FAILED_STATUSES = {"FAILED", "VALIDATION_TIMED_OUT", "REVOKED", "EXPIRED"}
CONFLICTING_RECORD_TYPES = {"A", "AAAA", "CNAME"}


@dataclass(frozen=True)
class HostedZoneRef:
  """Public hosted zone authoritative for a domain."""

  zone_id: str
  zone_name: str


def _normalize(name: str) -> str:
  return name.rstrip(".").lower()


def resolve_hosted_zone(domain: str, *, client: Any = None) -> HostedZoneRef:
  """Find the public hosted zone authoritative for ``domain``.

  The most specific zone wins, so ``app.example.com`` resolves to a zone of
  that name before ``example.com``. Never creates a zone.
  """
  domain = _normalize(domain)
  if not domain:
    raise ResolutionError("Domain name must not be empty")

  route53 = client or boto3.client("route53")
  best: HostedZoneRef | None = None
  try:
    for page in route53.get_paginator("list_hosted_zones").paginate():
      for zone in page.get("HostedZones", []):
        if zone.get("Config", {}).get("PrivateZone"):
          continue
        name = _normalize(zone["Name"])
        if domain != name and not domain.endswith(f".{name}"):
          continue
        if best is None or len(name) > len(best.zone_name):
          best = HostedZoneRef(zone_id=zone["Id"].split("/")[-1], zone_name=name)
  except (ClientError, BotoCoreError) as e:
    raise ResolutionError(f"Could not list hosted zones for {domain}: {e}") from e

  if best is None:
    raise ResolutionError(f"No public hosted zone found for {domain}")

  logger.info("Resolved %s to hosted zone %s (%s)", domain, best.zone_id, best.zone_name)
  return best


def check_alias_conflict(
  zone_id: str,
  domain: str,
  *,
  distribution_domain: str | None = None,
  client: Any = None,
) -> None:
  """Fail if the domain already has an address record that is not ours.

  An alias to ``distribution_domain`` is ours and is left for CloudFormation
  to upsert. Any other A, AAAA or CNAME record at the name is a conflict.
  """
  domain = _normalize(domain)
  route53 = client or boto3.client("route53")
  try:
    response = route53.list_resource_record_sets(
      HostedZoneId=zone_id,
      StartRecordName=domain,
      StartRecordType="A",
      MaxItems="10",
    )
  except (ClientError, BotoCoreError) as e:
    raise ResolutionError(f"Could not list records in zone {zone_id}: {e}") from e

  for record in response.get("ResourceRecordSets", []):
    if _normalize(record["Name"]) != domain:
      continue
    if record["Type"] not in CONFLICTING_RECORD_TYPES:
      continue

    alias = record.get("AliasTarget")
    if (
      alias
      and distribution_domain
      and _normalize(alias.get("DNSName", "")) == _normalize(distribution_domain)
    ):
      logger.info(
        "%s record for %s already targets %s", record["Type"], domain, distribution_domain
      )
      continue

    if alias:
      target = alias["DNSName"]
    else:
      target = ", ".join(r["Value"] for r in record.get("ResourceRecords", []))
    raise RecordConflictError(
      f"{record['Type']} record for {domain} already exists in zone {zone_id} "
      f"and points at {target}"
    )


def wait_for_certificate(
  certificate_arn: str,
  *,
  timeout: float = 1800,
  poll_interval: float = 15,
  client: Any = None,
  sleep: Callable[[float], None] = time.sleep,
  clock: Callable[[], float] = time.monotonic,
) -> str:
  """Block until the certificate is ISSUED and return its status.

  Raises:
    ValidationTimeout: if the certificate is not issued before ``timeout``
      seconds elapse, or validation ends in a failed state.
  """
  acm = client or boto3.client("acm", region_name="us-east-1")
  deadline = clock() + timeout

  while True:
    try:
      certificate = acm.describe_certificate(CertificateArn=certificate_arn)["Certificate"]
    except (ClientError, BotoCoreError) as e:
      raise ValidationTimeout(f"Could not describe {certificate_arn}: {e}") from e

    status = certificate.get("Status", "PENDING_VALIDATION")
    if status == "ISSUED":
      logger.info("Certificate %s issued", certificate_arn)
      return status
    if status in CERTIFICATE_FAILED_STATUSES:
      reason = certificate.get("FailureReason", status)
      raise ValidationTimeout(f"Certificate {certificate_arn} was not issued: {reason}")
    if clock() >= deadline:
      raise ValidationTimeout(
        f"Certificate {certificate_arn} still {status} after {timeout:.0f}s"
      )

    logger.info("Certificate %s is %s, waiting %ss", certificate_arn, status, poll_interval)
    sleep(poll_interval)


def check_stack_drift(
  stack_name: str,
  *,
  timeout: float = 300,
  poll_interval: float = 5,
  client: Any = None,
  sleep: Callable[[float], None] = time.sleep,
  clock: Callable[[], float] = time.monotonic,
) -> None:
  """Run CloudFormation drift detection on the site stack.

  Raises:
    ReconciliationConflict: if any resource was modified or deleted outside
      of the stack.
  """
  cfn = client or boto3.client("cloudformation")
  try:
    detection_id = cfn.detect_stack_drift(StackName=stack_name)["StackDriftDetectionId"]
    deadline = clock() + timeout
    while True:
      status = cfn.describe_stack_drift_detection_status(StackDriftDetectionId=detection_id)
      if status["DetectionStatus"] != "DETECTION_IN_PROGRESS":
        break
      if clock() >= deadline:
        raise SpaHostingError(f"Drift detection for {stack_name} did not finish in {timeout:.0f}s")
      sleep(poll_interval)

    if status["DetectionStatus"] == "DETECTION_FAILED":
      raise SpaHostingError(
        f"Drift detection for {stack_name} failed: {status.get('DetectionStatusReason', '')}"
      )
    if status.get("StackDriftStatus") != "DRIFTED":
      logger.info("Stack %s is in sync", stack_name)
      return

    drifts = cfn.describe_stack_resource_drifts(
      StackName=stack_name,
      StackResourceDriftStatusFilters=["MODIFIED", "DELETED"],
    )["StackResourceDrifts"]
  except (ClientError, BotoCoreError) as e:
    raise SpaHostingError(f"Drift detection for {stack_name} failed: {e}") from e

  raise ReconciliationConflict(stack_name, sorted(d["LogicalResourceId"] for d in drifts))
