"""Sync a build artifact into the origin bucket and invalidate the CDN.

Used by the pipeline's deploy stage and by the one-shot deploy script. Keys
are the artifact-relative paths, so redeploying unchanged files only adds a
new object version with the same content.

Stale objects (keys in the bucket but not in the artifact) are kept unless
``prune`` is set, so concurrent deploys of disjoint file sets leave their
union in the bucket. Noncurrent versions expire through the bucket lifecycle.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import DeployError
from .artifacts import Artifact

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 1000


@dataclass
class DeployResult:
  """What a deploy changed and the invalidation it requested."""

  uploaded: list[str] = field(default_factory=list)
  deleted: list[str] = field(default_factory=list)
  invalidation_id: str | None = None


class ArtifactDeployer:
  """Uploads artifacts to one bucket and invalidates one distribution."""

  def __init__(
    self,
    bucket: str,
    distribution_id: str,
    *,
    prune: bool = False,
    invalidation_paths: tuple[str, ...] = ("/*",),
    s3_client: Any = None,
    cloudfront_client: Any = None,
  ) -> None:
    self.bucket = bucket
    self.distribution_id = distribution_id
    self.prune = prune
    self.invalidation_paths = invalidation_paths
    self._s3 = s3_client or boto3.client("s3")
    self._cloudfront = cloudfront_client or boto3.client("cloudfront")

  def __call__(self, artifact: Artifact) -> DeployResult:
    return self.deploy(artifact.path)

  def deploy(self, source_dir: Path | str) -> DeployResult:
    """Upload every file under ``source_dir`` then invalidate the CDN."""
    source = Path(source_dir)
    if not source.is_dir():
      raise DeployError(f"Artifact directory {source} does not exist")

    result = DeployResult()
    for path in sorted(p for p in source.rglob("*") if p.is_file()):
      key = path.relative_to(source).as_posix()
      self._upload(path, key)
      result.uploaded.append(key)

    if self.prune:
      stale = sorted(self.list_keys() - set(result.uploaded))
      self._delete(stale)
      result.deleted = stale

    result.invalidation_id = self.invalidate(list(self.invalidation_paths))
    logger.info(
      "Deployed %d files to %s (%d deleted)",
      len(result.uploaded),
      self.bucket,
      len(result.deleted),
    )
    return result

  def list_keys(self) -> set[str]:
    """Every object key currently in the bucket."""
    keys: set[str] = set()
    try:
      for page in self._s3.get_paginator("list_objects_v2").paginate(Bucket=self.bucket):
        keys.update(obj["Key"] for obj in page.get("Contents", []))
    except (ClientError, BotoCoreError) as e:
      raise DeployError(f"Could not list s3://{self.bucket}: {e}") from e
    return keys

  def invalidate(self, paths: list[str]) -> str | None:
    """Request an edge cache purge; failures are logged, not raised.

    The origin always serves the latest version, so a failed invalidation
    only delays propagation until cached copies expire.
    """
    try:
      response = self._cloudfront.create_invalidation(
        DistributionId=self.distribution_id,
        InvalidationBatch={
          "Paths": {"Quantity": len(paths), "Items": paths},
          "CallerReference": uuid.uuid4().hex,
        },
      )
    except (ClientError, BotoCoreError) as e:
      logger.warning("Invalidation of %s on %s failed: %s", paths, self.distribution_id, e)
      return None

    invalidation_id = str(response["Invalidation"]["Id"])
    logger.info("Created invalidation %s for %s", invalidation_id, paths)
    return invalidation_id

  def _upload(self, path: Path, key: str) -> None:
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    try:
      self._s3.upload_file(
        str(path),
        self.bucket,
        key,
        ExtraArgs={"ContentType": content_type},
      )
    except (ClientError, BotoCoreError, S3UploadFailedError) as e:
      raise DeployError(f"Upload of {key} to s3://{self.bucket} failed: {e}") from e
    logger.debug("Uploaded %s (%s)", key, content_type)

  def _delete(self, keys: list[str]) -> None:
    for start in range(0, len(keys), DELETE_BATCH_SIZE):
      batch = keys[start : start + DELETE_BATCH_SIZE]
      try:
        response = self._s3.delete_objects(
          Bucket=self.bucket,
          Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
        )
      except (ClientError, BotoCoreError) as e:
        raise DeployError(f"Delete from s3://{self.bucket} failed: {e}") from e
      errors = response.get("Errors", [])
      if errors:
        failed = ", ".join(err["Key"] for err in errors)
        raise DeployError(f"Could not delete stale objects: {failed}")
      logger.info("Deleted %d stale objects from %s", len(batch), self.bucket)
