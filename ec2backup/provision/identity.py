"""IAM role, inline policy and instance profile for the backup instance."""

import logging
import time

from ec2backup.core.client import CloudClient
from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import PropagationTimeoutError, ProviderError
from ec2backup.core.models import ProvisionedIdentity

logger = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"


def build_trust_policy() -> dict:
    """Allow EC2 to assume the role."""
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "ec2.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def build_permission_policy(bucket: str, partition: str = "aws") -> dict:
    """
    Full access to one bucket, plus snapshot management.

    The EC2 statement is scoped to "*" rather than the instance. Flagged for
    security review.
    """
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["s3:*"],
                "Resource": [
                    f"arn:{partition}:s3:::{bucket}",
                    f"arn:{partition}:s3:::{bucket}/*",
                ],
            },
            {
                "Effect": "Allow",
                "Action": ["ec2:CreateSnapshot", "ec2:Describe*", "ec2:CreateTags"],
                "Resource": "*",
            },
        ],
    }


class IdentityProvisioner:
    """Creates the role/policy/profile chain and waits until it is visible."""

    def __init__(self, client: CloudClient, settings: BackupSettings = config):
        self.client = client
        self.settings = settings

    def ensure(
        self,
        role_name: str,
        bucket_name: str,
        profile_name: str | None = None,
        policy_name: str | None = None,
    ) -> ProvisionedIdentity:
        """
        Create the identity chain for a new instance.

        Each step raises ProviderError naming the IAM object that failed. Objects
        created before the failure are logged for manual cleanup.

        Raises:
            ProviderError: If any IAM call fails
            PropagationTimeoutError: If the role or profile never becomes readable
        """
        profile_name = profile_name or f"{role_name}-profile"
        policy_name = policy_name or f"{role_name}-policy"
        trust_policy = build_trust_policy()
        policy_document = build_permission_policy(bucket_name)
        created = []

        try:
            logger.info(f"Creating IAM role: {role_name}")
            role = self.client.create_role(role_name, trust_policy)
            created.append(f"role {role_name}")

            self.client.put_role_policy(role_name, policy_name, policy_document)
            created.append(f"inline policy {policy_name}")

            self.client.create_instance_profile(profile_name)
            created.append(f"instance profile {profile_name}")

            self.client.add_role_to_instance_profile(profile_name, role_name)
        except ProviderError:
            if created:
                logger.error(f"IAM setup incomplete; already created: {', '.join(created)}")
            raise

        logger.info(f"IAM role {role_name} and instance profile {profile_name} created")
        self.wait_for_propagation(role_name, profile_name)

        return ProvisionedIdentity(
            role_name=role_name,
            role_arn=role.get("Arn"),
            policy_name=policy_name,
            trust_policy=trust_policy,
            policy_document=policy_document,
            instance_profile_name=profile_name,
        )

    def wait_for_propagation(self, role_name: str, profile_name: str) -> None:
        """
        Poll until both the role and the profile-role binding can be read back.

        Raises:
            PropagationTimeoutError: After propagation_timeout_seconds
        """
        timeout = self.settings.propagation_timeout_seconds
        interval = self.settings.propagation_poll_seconds
        deadline = time.monotonic() + timeout

        for resource, ready in (
            (f"IAM role {role_name}", lambda: self._role_visible(role_name)),
            (f"instance profile {profile_name}", lambda: self._profile_bound(profile_name)),
        ):
            while not ready():
                if time.monotonic() >= deadline:
                    raise PropagationTimeoutError(resource, timeout)
                logger.info(f"Waiting for {resource} to propagate...")
                time.sleep(interval)

        logger.info(f"IAM role {role_name} is visible")

    def _role_visible(self, role_name: str) -> bool:
        try:
            self.client.get_role(role_name)
        except ProviderError as e:
            if e.code != "NoSuchEntity":
                raise
            return False
        return True

    def _profile_bound(self, profile_name: str) -> bool:
        try:
            profile = self.client.get_instance_profile(profile_name)
        except ProviderError as e:
            if e.code != "NoSuchEntity":
                raise
            return False
        return bool(profile.get("Roles"))
