"""Secret lookup by name in AWS Secrets Manager."""

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import SecretNotFoundError

logger = logging.getLogger(__name__)


def lookup_secret(name: str, *, client: Any = None, region: str | None = None) -> str:
  """Return the string value of the secret called ``name``.

  Raises:
    SecretNotFoundError: if the secret does not exist, cannot be read, or
      holds binary data only.
  """
  secrets = client or boto3.client("secretsmanager", region_name=region)
  try:
    response = secrets.get_secret_value(SecretId=name)
  except ClientError as e:
    code = e.response.get("Error", {}).get("Code", "Unknown")
    raise SecretNotFoundError(f"Secret {name!r} could not be resolved ({code})") from e
  except BotoCoreError as e:
    raise SecretNotFoundError(f"Secret {name!r} could not be resolved: {e}") from e

  value = response.get("SecretString")
  if not value:
    raise SecretNotFoundError(f"Secret {name!r} has no string value")

  logger.info("Resolved secret %s", name)
  return str(value)
