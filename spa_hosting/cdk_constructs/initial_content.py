"""One-shot upload of a local build into the origin bucket."""

from pathlib import Path

from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_deployment as s3_deploy
from constructs import Construct


class InitialDeployment(Construct):
  """Seeds the bucket with a locally built artifact and invalidates the CDN.

  Uses the same prune policy as the pipeline's deploy stage so both writers
  treat stale objects alike.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    bucket: s3.IBucket,
    distribution: cloudfront.IDistribution,
    source_dir: str | Path,
    prune: bool = False,
  ) -> None:
    super().__init__(scope, id)

    self.deployment = s3_deploy.BucketDeployment(
      self,
      "Deployment",
      sources=[s3_deploy.Source.asset(str(source_dir))],
      destination_bucket=bucket,
      distribution=distribution,
      distribution_paths=["/*"],
      prune=prune,
      retain_on_delete=True,  # Keep files if stack is deleted
    )
