"""Resolve the existing Route 53 hosted zone for a domain."""

from aws_cdk import aws_route53 as route53
from constructs import Construct


class HostedZoneLookup(Construct):
  """Existing hosted zone authoritative for the site's domain (never creates one).

  The zone may be the domain itself or a parent of it, so ``app.example.com``
  can live in ``example.com``. The zone is imported directly when its id is
  known, otherwise resolved by zone name through a context lookup, which needs
  an explicit account and region on the stack.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    zone_name: str | None = None,
    hosted_zone_id: str | None = None,
  ) -> None:
    super().__init__(scope, id)

    self.zone_name = zone_name or domain_name

    if hosted_zone_id:
      self.hosted_zone = route53.HostedZone.from_hosted_zone_attributes(
        self,
        "HostedZone",
        hosted_zone_id=hosted_zone_id,
        zone_name=self.zone_name,
      )
    else:
      self.hosted_zone = route53.HostedZone.from_lookup(
        self,
        "HostedZone",
        domain_name=self.zone_name,
      )
