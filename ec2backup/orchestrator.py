"""Linear provisioning recipe: bucket, identity, network, instance, upload, snapshots.

NO try-catch blocks - every fatal error bubbles up to the caller. Only the
scratch-file cleanup runs on the way out.
"""

import logging
from pathlib import Path

from ec2backup.backup.archive import ArchiveAndUploadPipeline
from ec2backup.backup.scratch import scratch_files
from ec2backup.core.client import CloudClient
from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import SourceNotFoundError
from ec2backup.core.models import ComputeInstance, RunConfig, RunResult
from ec2backup.provision.bucket import StorageBucketProvisioner
from ec2backup.provision.compute import ComputeProvisioner
from ec2backup.provision.identity import IdentityProvisioner
from ec2backup.provision.network import NetworkAndKeyProvisioner
from ec2backup.provision.snapshot import SnapshotManager

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class BackupOrchestrator:
    """Runs one backup end to end against a CloudClient."""

    def __init__(self, client: CloudClient, settings: BackupSettings = config):
        self.client = client
        self.settings = settings
        self.buckets = StorageBucketProvisioner(client)
        self.identities = IdentityProvisioner(client, settings)
        self.networks = NetworkAndKeyProvisioner(client, settings)
        self.compute = ComputeProvisioner(client, settings)
        self.snapshots = SnapshotManager(client, settings)
        self.pipeline = ArchiveAndUploadPipeline(client, Path(settings.backup_base_dir))

    def run(self, run_config: RunConfig) -> RunResult:
        """
        Execute the recipe for one RunConfig.

        Returns:
            RunResult with every resource the run used or created

        Raises:
            SourceNotFoundError: Before any cloud call if the source vanished
            ProviderError: On any fatal provisioning or upload failure
            PropagationTimeoutError: If the new IAM role never becomes visible
        """
        if not run_config.source_path.exists():
            raise SourceNotFoundError(run_config.source_path)

        with scratch_files() as scratch:
            bucket = self.buckets.ensure(
                run_config.bucket_name,
                run_config.region,
                existing=not run_config.creates_bucket,
            )

            identity = network = key = None
            if run_config.creates_instance:
                identity = self.identities.ensure(
                    run_config.role_name,
                    bucket.name,
                    profile_name=run_config.instance_profile_name,
                    policy_name=run_config.policy_name,
                )
                network, key = self.networks.ensure(run_config.security_group_name, run_config.key_name)
                instance = self.compute.launch(
                    identity,
                    network,
                    key,
                    bucket.name,
                    instance_type=run_config.instance_type,
                )
            else:
                logger.info(f"Using existing EC2 instance: {run_config.existing_instance_id}")
                instance = ComputeInstance(instance_id=run_config.existing_instance_id)

            artifact = self.pipeline.run(
                run_config.source_path,
                run_config.compress,
                bucket.name,
                run_config.archive_stem,
                scratch=None if run_config.keep_archive else scratch,
            )

            snapshot_tag = run_config.snapshot_label(self.settings.snapshot_tag)
            outcomes = self.snapshots.snapshot_all(
                instance.instance_id,
                snapshot_tag,
                enabled=run_config.snapshots_enabled,
            )

        return RunResult(
            bucket=bucket,
            identity=identity,
            network=network,
            key=key,
            instance=instance,
            artifact=artifact,
            snapshots=outcomes,
        )
