"""EBS snapshots of an instance's attached volumes."""

import logging
from concurrent.futures import ThreadPoolExecutor

from ec2backup.core.client import CloudClient
from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import BackupError
from ec2backup.core.models import Snapshot, SnapshotOutcome
from ec2backup.provision.compute import volume_ids_of

logger = logging.getLogger(__name__)


class SnapshotManager:
    """Snapshots every attached volume; failures stay per-volume."""

    def __init__(self, client: CloudClient, settings: BackupSettings = config):
        self.client = client
        self.settings = settings

    def list_volume_ids(self, instance_id: str) -> list[str]:
        volume_ids = []
        for instance in self.client.describe_instances(instance_id):
            volume_ids.extend(volume_ids_of(instance))
        return volume_ids

    def snapshot_all(self, instance_id: str, tag: str, enabled: bool = True) -> list[SnapshotOutcome]:
        """
        Snapshot and tag each volume attached to the instance.

        Args:
            instance_id: Instance whose volumes are snapshotted
            tag: Description and Name tag for every snapshot
            enabled: If False, nothing is called

        Returns:
            One SnapshotOutcome per volume, in attachment order

        Raises:
            ProviderError: If the instance itself cannot be described
        """
        if not enabled:
            logger.info("Skipping EBS snapshots.")
            return []

        logger.info(f"Creating snapshots for instance: {instance_id}")
        volume_ids = self.list_volume_ids(instance_id)
        if not volume_ids:
            logger.warning(f"No volumes attached to {instance_id} yet; no snapshots taken")
            return []

        workers = min(self.settings.snapshot_workers, len(volume_ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(lambda volume_id: self.snapshot_volume(volume_id, tag), volume_ids))

        failed = [outcome.volume_id for outcome in outcomes if not outcome.ok]
        if failed:
            logger.warning(f"{len(failed)}/{len(outcomes)} volume snapshots failed: {', '.join(failed)}")
        return outcomes

    def snapshot_volume(self, volume_id: str, tag: str) -> SnapshotOutcome:
        try:
            response = self.client.create_snapshot(volume_id, tag)
        except BackupError as e:
            logger.error(f"Snapshot of {volume_id} failed: {e}")
            return SnapshotOutcome(volume_id=volume_id, error=e)

        snapshot = Snapshot(
            snapshot_id=response["SnapshotId"],
            volume_id=volume_id,
            tag=tag,
            start_time=response.get("StartTime"),
        )
        try:
            self.client.create_tags([snapshot.snapshot_id], [{"Key": "Name", "Value": tag}])
        except BackupError as e:
            logger.error(f"Snapshot {snapshot.snapshot_id} created but tagging failed: {e}")
            return SnapshotOutcome(volume_id=volume_id, snapshot=snapshot, error=e)

        logger.info(f"Snapshot created: {snapshot.snapshot_id} ({volume_id})")
        return SnapshotOutcome(volume_id=volume_id, snapshot=snapshot)
