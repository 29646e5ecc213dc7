"""Security group and SSH key pair for a new instance."""

import logging
import os
from pathlib import Path

from ec2backup.core.client import CloudClient
from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import KeyFileError, ProviderError
from ec2backup.core.models import KeyMaterial, ProvisionedNetwork

logger = logging.getLogger(__name__)

SSH_PORT = 22
# Open to the world; narrow this for anything but a lab account
SSH_CIDR = "0.0.0.0/0"


def write_private_key(path: Path, material: bytes) -> Path:
    """Write key material readable by the owner only. Refuses to overwrite."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o400)
    with os.fdopen(fd, "wb") as fh:
        fh.write(material)
    os.chmod(path, 0o400)
    return path


class NetworkAndKeyProvisioner:
    """Creates the run's security group and key pair in the default VPC."""

    def __init__(self, client: CloudClient, settings: BackupSettings = config):
        self.client = client
        self.settings = settings

    def default_vpc_id(self) -> str:
        vpcs = self.client.describe_vpcs()
        if not vpcs:
            raise ProviderError("describe_vpcs", "VpcNotFound", "No VPC available in region", self.client.region)
        return vpcs[0]["VpcId"]

    def ensure(self, group_name: str, key_name: str) -> tuple[ProvisionedNetwork, KeyMaterial]:
        """
        Create the security group (SSH ingress) and the key pair.

        Returns:
            Tuple of (ProvisionedNetwork, KeyMaterial)

        Raises:
            ProviderError: If VPC lookup, group creation or key creation fails
        """
        vpc_id = self.default_vpc_id()

        logger.info(f"Creating security group {group_name} in {vpc_id}")
        group_id = self.client.create_security_group(group_name, "Backup SG", vpc_id)
        logger.info(f"Created security group: {group_id}")

        network = ProvisionedNetwork(vpc_id=vpc_id, security_group_id=group_id, ingress_port=SSH_PORT, ingress_cidr=SSH_CIDR)
        try:
            self.client.authorize_ingress(group_id, SSH_PORT, SSH_CIDR)
        except ProviderError as e:
            # An already-open rule is fine, and SSH is not needed for the backup itself
            logger.warning(f"Ingress on {group_id} not authorized: {e}")
            network.ingress_authorized = False

        key = self.create_key(key_name)
        return network, key

    def create_key(self, key_name: str) -> KeyMaterial:
        logger.info(f"Creating key pair: {key_name}")
        try:
            response = self.client.create_key_pair(key_name)
        except ProviderError:
            logger.error(f"Key pair {key_name} not created; security group remains for manual cleanup")
            raise

        material = response["KeyMaterial"].encode()
        key_path = Path(self.settings.key_dir) / f"{key_name}.pem"
        try:
            write_private_key(key_path, material)
        except OSError as e:
            logger.error(f"Key pair {key_name} exists but {key_path} could not be written; delete the key pair manually")
            raise KeyFileError(key_name, key_path, e.strerror or str(e)) from e
        logger.info(f"Private key saved to {key_path}")

        return KeyMaterial(
            key_name=key_name,
            key_path=key_path,
            fingerprint=response.get("KeyFingerprint"),
            private_key=material,
        )
