"""S3 bucket provisioning."""

import logging

from ec2backup.core.client import CloudClient
from ec2backup.core.errors import ProviderError
from ec2backup.core.models import ProvisionedBucket

logger = logging.getLogger(__name__)

# The one region where CreateBucket must not carry a LocationConstraint
GLOBAL_DEFAULT_REGION = "us-east-1"


def location_constraint(region: str) -> str | None:
    return None if region == GLOBAL_DEFAULT_REGION else region


class StorageBucketProvisioner:
    """Ensures a versioned, AES256-encrypted bucket exists."""

    def __init__(self, client: CloudClient):
        self.client = client

    def ensure(self, name: str, region: str, existing: bool = False) -> ProvisionedBucket:
        """
        Create the bucket, or reuse an operator-supplied one read-only.

        Args:
            name: Bucket name
            region: Region the bucket is created in
            existing: True if the operator supplied the bucket

        Returns:
            ProvisionedBucket descriptor

        Raises:
            ProviderError: If the existing bucket is not reachable, or creation fails
        """
        if existing:
            self.client.head_bucket(name)
            logger.info(f"Using existing S3 bucket: {name}")
            return ProvisionedBucket(name=name, region=region, created=False, versioning=None, encryption=None)

        logger.info(f"Creating S3 bucket: {name}")
        self.client.create_bucket(name, location_constraint(region))
        logger.info(f"Created S3 bucket: {name}")

        bucket = ProvisionedBucket(name=name, region=region, created=True)

        # Bucket exists from here on; remaining settings are best-effort
        try:
            self.client.put_bucket_versioning(name)
        except ProviderError as e:
            logger.warning(f"Bucket {name} created but versioning failed: {e}")
            bucket.versioning = None
            bucket.warnings.append(str(e))

        try:
            self.client.put_bucket_encryption(name)
        except ProviderError as e:
            logger.warning(f"Bucket {name} created but default encryption failed: {e}")
            bucket.encryption = None
            bucket.warnings.append(str(e))

        if not bucket.warnings:
            logger.info(f"S3 bucket {name} secured with versioning and AES256 encryption")
        return bucket
