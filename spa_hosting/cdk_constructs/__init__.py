"""CDK constructs for single-page application hosting."""

from .certificate import DnsValidatedCertificate
from .distribution import SpaDistribution
from .dns import AliasRecord
from .initial_content import InitialDeployment
from .pipeline import DeliveryPipeline
from .static_site import StaticSpaSite
from .storage import OriginBucket
from .zone import HostedZoneLookup

__all__ = [
  "AliasRecord",
  "DeliveryPipeline",
  "DnsValidatedCertificate",
  "HostedZoneLookup",
  "InitialDeployment",
  "OriginBucket",
  "SpaDistribution",
  "StaticSpaSite",
]
