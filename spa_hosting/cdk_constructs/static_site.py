"""Main composite construct for a single-page application site."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from constructs import Construct

from ..config import PipelineConfig
from ..graph import ProvisioningGraph
from .certificate import DnsValidatedCertificate
from .distribution import SpaDistribution
from .dns import AliasRecord
from .initial_content import InitialDeployment
from .pipeline import DeliveryPipeline
from .storage import OriginBucket
from .zone import HostedZoneLookup


class StaticSpaSite(Construct):
  """Complete SPA hosting infrastructure.

  Creates, in dependency order:
  - Hosted zone lookup (existing zone only)
  - ACM certificate (DNS validated)
  - Private S3 origin bucket with an Origin Access Identity
  - CloudFront distribution with the SPA 404 fallback
  - Route 53 alias record
  - (Optional) Initial deployment of a local build
  - (Optional) Checkout/build/deploy pipeline
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    domain_name: str,
    hosted_zone_id: str | None = None,
    hosted_zone_name: str | None = None,
    artifact_source_dir: str | Path | None = None,
    pipeline_config: PipelineConfig | None = None,
    prune_stale_objects: bool = False,
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
  ) -> None:
    super().__init__(scope, id)

    stack_name = Stack.of(self).stack_name

    self.graph = ProvisioningGraph()
    self.graph.add(
      "zone",
      lambda _: HostedZoneLookup(
        self,
        "Zone",
        domain_name=domain_name,
        zone_name=hosted_zone_name,
        hosted_zone_id=hosted_zone_id,
      ),
    )
    self.graph.add(
      "certificate",
      lambda deps: DnsValidatedCertificate(
        self,
        "Certificate",
        domain_name=domain_name,
        hosted_zone=deps["zone"].hosted_zone,
      ),
      inputs=("zone",),
    )
    # Bucket name must be the exact domain name
    self.graph.add(
      "storage",
      lambda _: OriginBucket(
        self,
        "Storage",
        bucket_name=domain_name,
        removal_policy=removal_policy,
      ),
    )
    self.graph.add(
      "distribution",
      lambda deps: SpaDistribution(
        self,
        "Distribution",
        bucket=deps["storage"].bucket,
        access_identity=deps["storage"].access_identity,
        certificate=deps["certificate"].certificate,
        domain_name=domain_name,
      ),
      inputs=("certificate", "storage"),
    )
    self.graph.add(
      "alias_record",
      lambda deps: AliasRecord(
        self,
        "Dns",
        domain_name=domain_name,
        hosted_zone=deps["zone"].hosted_zone,
        distribution=deps["distribution"].distribution,
      ),
      inputs=("zone", "distribution"),
    )

    if artifact_source_dir is not None:
      self.graph.add(
        "initial_deployment",
        lambda deps: InitialDeployment(
          self,
          "InitialDeployment",
          bucket=deps["storage"].bucket,
          distribution=deps["distribution"].distribution,
          source_dir=artifact_source_dir,
          prune=prune_stale_objects,
        ),
        inputs=("storage", "distribution"),
      )

    if pipeline_config is not None:
      self.graph.add(
        "pipeline",
        lambda deps: DeliveryPipeline(
          self,
          "Pipeline",
          pipeline_config=pipeline_config,
          origin=deps["storage"],
          distribution=deps["distribution"].distribution,
          prune=prune_stale_objects,
          resource_prefix=stack_name,
        ),
        inputs=("storage", "distribution"),
      )

    self.nodes: Mapping[str, Any] = self.graph.build()
    self.zone: HostedZoneLookup = self.nodes["zone"]
    self.certificate: DnsValidatedCertificate = self.nodes["certificate"]
    self.storage: OriginBucket = self.nodes["storage"]
    self.distribution: SpaDistribution = self.nodes["distribution"]
    self.dns: AliasRecord = self.nodes["alias_record"]
    self.initial_deployment: InitialDeployment | None = self.nodes.get("initial_deployment")
    self.pipeline: DeliveryPipeline | None = self.nodes.get("pipeline")

    # Outputs
    CfnOutput(
      self,
      "SiteUrl",
      value=f"https://{domain_name}",
      description="Public site URL",
    )
    CfnOutput(
      self,
      "BucketName",
      value=self.storage.bucket.bucket_name,
      description="S3 origin bucket name",
    )
    CfnOutput(
      self,
      "CertificateArn",
      value=self.certificate.certificate.certificate_arn,
      description="ACM certificate ARN",
    )
    CfnOutput(
      self,
      "DistributionId",
      value=self.distribution.distribution.distribution_id,
      description="CloudFront distribution ID",
    )
    CfnOutput(
      self,
      "DistributionDomainName",
      value=self.distribution.distribution.distribution_domain_name,
      description="CloudFront distribution domain name",
    )
    CfnOutput(
      self,
      "HostedZoneId",
      value=self.zone.hosted_zone.hosted_zone_id,
      description="Route 53 hosted zone ID",
    )
    if self.pipeline is not None:
      CfnOutput(
        self,
        "PipelineName",
        value=self.pipeline.pipeline.pipeline_name,
        description="CodePipeline name",
      )
