"""Private S3 origin bucket for the built site."""

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct


class OriginBucket(Construct):
  """S3 bucket readable only through CloudFront.

  Public access is blocked entirely. The bucket owns the Origin Access
  Identity the distribution reads through, and the only other principal
  granted access is the pipeline's deploy role.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    bucket_name: str,
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN,
    noncurrent_version_expiration: Duration = Duration.days(30),
  ) -> None:
    super().__init__(scope, id)

    self.bucket = s3.Bucket(
      self,
      "Bucket",
      bucket_name=bucket_name,
      public_read_access=False,
      block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
      enforce_ssl=True,
      versioned=True,
      lifecycle_rules=[
        s3.LifecycleRule(
          id="expire-noncurrent-versions",
          noncurrent_version_expiration=noncurrent_version_expiration,
        )
      ],
      removal_policy=removal_policy,
      auto_delete_objects=removal_policy == RemovalPolicy.DESTROY,
    )

    self.access_identity = cloudfront.OriginAccessIdentity(
      self,
      "AccessIdentity",
      comment=f"OAI for {bucket_name}",
    )
    self.grant_read(self.access_identity)

  def grant_read(self, identity: iam.IGrantable) -> iam.Grant:
    """Add a read-only bucket policy statement for ``identity``."""
    return self.bucket.grant_read(identity)

  def grant_deploy(self, principal: iam.IGrantable) -> iam.Grant:
    """Allow ``principal`` to list, write and delete site objects."""
    self.bucket.grant_read(principal)
    self.bucket.grant_delete(principal)
    return self.bucket.grant_put(principal)
