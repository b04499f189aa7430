"""CloudFront distribution for a single-page application."""

from aws_cdk import Duration
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_s3 as s3
from constructs import Construct

DEFAULT_DOCUMENT = "index.html"
NOT_FOUND_TTL = Duration.minutes(30)


class SpaDistribution(Construct):
  """CloudFront distribution in front of a private S3 origin.

  Origin 404s are answered with the default document and a 404 status so
  client-side routes resolve, cached for at most 30 minutes.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    bucket: s3.IBucket,
    access_identity: cloudfront.IOriginAccessIdentity,
    certificate: acm.ICertificate,
    domain_name: str,
    default_document: str = DEFAULT_DOCUMENT,
  ) -> None:
    super().__init__(scope, id)

    self.distribution = cloudfront.Distribution(
      self,
      "Distribution",
      default_behavior=cloudfront.BehaviorOptions(
        origin=origins.S3BucketOrigin.with_origin_access_identity(
          bucket,
          origin_access_identity=access_identity,
        ),
        compress=True,
        viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
        allowed_methods=cloudfront.AllowedMethods.ALLOW_GET_HEAD,
        cached_methods=cloudfront.CachedMethods.CACHE_GET_HEAD,
      ),
      domain_names=[domain_name],
      certificate=certificate,
      default_root_object=default_document,
      minimum_protocol_version=cloudfront.SecurityPolicyProtocol.TLS_V1_2_2021,
      ssl_support_method=cloudfront.SSLMethod.SNI,
      error_responses=[
        cloudfront.ErrorResponse(
          http_status=404,
          response_http_status=404,
          response_page_path=f"/{default_document}",
          ttl=NOT_FOUND_TTL,
        )
      ],
    )
