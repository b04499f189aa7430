"""Route 53 alias record for the site."""

from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct


class AliasRecord(Construct):
  """A and AAAA alias records routing the domain to the CloudFront distribution."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    hosted_zone: route53.IHostedZone,
    distribution: cloudfront.IDistribution,
  ) -> None:
    super().__init__(scope, id)

    target = route53.RecordTarget.from_alias(targets.CloudFrontTarget(distribution))

    self.record = route53.ARecord(
      self,
      "AliasRecord",
      zone=hosted_zone,
      record_name=domain_name,
      target=target,
    )

    # The distribution serves IPv6 as well
    self.aaaa_record = route53.AaaaRecord(
      self,
      "AaaaAliasRecord",
      zone=hosted_zone,
      record_name=domain_name,
      target=target,
    )
