"""AWS resource provisioners."""

from ec2backup.provision.bucket import StorageBucketProvisioner
from ec2backup.provision.compute import ComputeProvisioner
from ec2backup.provision.identity import IdentityProvisioner
from ec2backup.provision.network import NetworkAndKeyProvisioner
from ec2backup.provision.snapshot import SnapshotManager

__all__ = [
    "StorageBucketProvisioner",
    "IdentityProvisioner",
    "NetworkAndKeyProvisioner",
    "ComputeProvisioner",
    "SnapshotManager",
]
