"""CDK stack for a single SPA site."""

from typing import Any

import aws_cdk as cdk
from constructs import Construct

from spa_hosting.cdk_constructs import StaticSpaSite
from spa_hosting.config import SiteConfig


class SpaSiteStack(cdk.Stack):
  """Stack for a single SPA site and its delivery pipeline."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    site_config: SiteConfig,
    **kwargs: Any,
  ) -> None:
    super().__init__(scope, id, **kwargs)

    self.site = StaticSpaSite(
      self,
      "Site",
      domain_name=site_config.domain,
      hosted_zone_id=site_config.hosted_zone_id,
      hosted_zone_name=site_config.zone_name,
      artifact_source_dir=site_config.artifact_source_dir,
      pipeline_config=site_config.pipeline,
      prune_stale_objects=site_config.prune_stale_objects,
      removal_policy=site_config.removal_policy,
    )

    # Tag resources with owner info
    if site_config.owner:
      cdk.Tags.of(self).add("Owner", site_config.owner)
    if site_config.email:
      cdk.Tags.of(self).add("OwnerEmail", site_config.email)
    cdk.Tags.of(self).add("Project", "spa-hosting")
    cdk.Tags.of(self).add("Domain", site_config.domain)
