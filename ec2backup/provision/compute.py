"""EC2 instance launch with a self-backup bootstrap script."""

import logging

from ec2backup.core.client import CloudClient
from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import ValidationError
from ec2backup.core.models import ComputeInstance, KeyMaterial, ProvisionedIdentity, ProvisionedNetwork

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = ("/proc", "/sys", "/dev", "/tmp", "/run")
INSTANCE_BACKUP_DIR = "/tmp/ec2-backup"


def build_user_data(bucket: str, backup_dir: str = INSTANCE_BACKUP_DIR) -> str:
    """
    First-boot script: archive the root filesystem and upload it to the bucket.

    Runs unattended on the instance; nothing waits for it.
    """
    excludes = " ".join(f"--exclude={path}" for path in EXCLUDED_PATHS)
    archive = f"{backup_dir}/system-backup.tar.gz"
    return "\n".join(
        [
            "#!/bin/bash",
            "yum install -y awscli jq tar gzip",
            f"mkdir -p {backup_dir}",
            f"tar {excludes} -czpf {archive} /",
            f"aws s3 cp {archive} s3://{bucket}/",
            "",
        ]
    )


class ComputeProvisioner:
    """Launches the backup instance from the newest matching image."""

    def __init__(self, client: CloudClient, settings: BackupSettings = config):
        self.client = client
        self.settings = settings

    def resolve_latest_image(self, name_filter: str, owner: str) -> str:
        """
        Return the ImageId with the greatest CreationDate among available matches.

        Raises:
            ValidationError: If nothing matches the filter
        """
        images = self.client.describe_images(
            owners=[owner],
            filters=[
                {"Name": "name", "Values": [name_filter]},
                {"Name": "state", "Values": ["available"]},
            ],
        )
        if not images:
            raise ValidationError(f"No available image matches '{name_filter}' (owner {owner})")

        latest = max(images, key=lambda image: image["CreationDate"])
        logger.info(f"Using AMI {latest['ImageId']} ({latest.get('Name', name_filter)})")
        return latest["ImageId"]

    def launch(
        self,
        identity: ProvisionedIdentity,
        network: ProvisionedNetwork,
        key: KeyMaterial,
        bucket_name: str,
        instance_type: str | None = None,
        ami_filter: str | None = None,
    ) -> ComputeInstance:
        """
        Launch one instance with the identity, group and key attached.

        Returns:
            ComputeInstance; public_ip is None while the address is unknown

        Raises:
            ProviderError: If RunInstances fails
        """
        image_id = self.resolve_latest_image(ami_filter or self.settings.ami_name_filter, self.settings.ami_owner)
        instance_type = instance_type or self.settings.instance_type

        logger.info(f"Launching {instance_type} instance from {image_id}")
        instance = self.client.run_instance(
            ImageId=image_id,
            InstanceType=instance_type,
            KeyName=key.key_name,
            SecurityGroupIds=[network.security_group_id],
            IamInstanceProfile={"Name": identity.instance_profile_name},
            UserData=build_user_data(bucket_name),
            TagSpecifications=[
                {
                    "ResourceType": "instance",
                    "Tags": [{"Key": "Name", "Value": self.settings.instance_name}],
                }
            ],
        )

        result = ComputeInstance(
            instance_id=instance["InstanceId"],
            public_ip=instance.get("PublicIpAddress"),
            instance_profile_name=identity.instance_profile_name,
            volume_ids=volume_ids_of(instance),
            created=True,
        )
        logger.info(f"EC2 instance created: {result.instance_id} (Public IP: {result.address})")
        return result


def volume_ids_of(instance: dict) -> list[str]:
    """EBS volume ids in block-device-mapping order."""
    return [
        mapping["Ebs"]["VolumeId"]
        for mapping in instance.get("BlockDeviceMappings", [])
        if "Ebs" in mapping and mapping["Ebs"].get("VolumeId")
    ]
