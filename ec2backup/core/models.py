"""Pydantic models - Single source of truth for data structures.

RunConfig validators raise ec2backup's own ValidationError, which pydantic lets
through unchanged. Everything else is validated by Pydantic automatically.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ec2backup.core.errors import BackupError, PartialFailure, SourceNotFoundError, ValidationError


def run_timestamp() -> str:
    """Wall-clock timestamp used to suffix every name generated by a run."""
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


class RunConfig(BaseModel):
    """Operator input for one backup run. Built once, before any cloud call."""

    model_config = ConfigDict(frozen=True)

    region: str = Field(..., description="AWS region")
    profile: str | None = Field(default=None, description="AWS CLI profile")
    instance_type: str = Field(default="t3.micro", description="Instance type for a new instance")
    source_path: Path = Field(..., description="File or directory to back up")
    compress: bool = Field(default=True, description="gzip the archive")
    snapshots_enabled: bool = Field(default=True, description="Snapshot attached volumes")
    existing_bucket: str | None = Field(default=None, description="Reuse this bucket instead of creating one")
    existing_instance_id: str | None = Field(default=None, description="Reuse this instance instead of creating one")
    keep_archive: bool = Field(default=False, description="Leave the local archive in place after upload")
    timestamp: str = Field(default_factory=run_timestamp, pattern=r"^\d{14}$")

    @field_validator("region", "instance_type")
    @classmethod
    def _required(cls, value: str, info) -> str:
        value = value.strip()
        if not value:
            raise ValidationError(f"{info.field_name} must not be empty")
        return value

    @field_validator("profile", "existing_bucket", "existing_instance_id", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("source_path", mode="before")
    @classmethod
    def _source_given(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError("source_path must not be empty")
        return value

    @field_validator("source_path")
    @classmethod
    def _source_exists(cls, value: Path) -> Path:
        value = value.expanduser()
        if not value.exists():
            raise SourceNotFoundError(value)
        return value

    @property
    def creates_bucket(self) -> bool:
        return self.existing_bucket is None

    @property
    def creates_instance(self) -> bool:
        return self.existing_instance_id is None

    @property
    def bucket_name(self) -> str:
        return self.existing_bucket or f"ec2-backup-{self.timestamp}"

    @property
    def role_name(self) -> str:
        return f"EC2_S3_Backup_Role_{self.timestamp}"

    @property
    def instance_profile_name(self) -> str:
        return f"{self.role_name}-profile"

    @property
    def policy_name(self) -> str:
        return f"{self.role_name}-policy"

    @property
    def security_group_name(self) -> str:
        return f"ec2-backup-sg-{self.timestamp}"

    @property
    def key_name(self) -> str:
        return f"ec2-backup-key-{self.timestamp}"

    @property
    def archive_stem(self) -> str:
        return f"backup_{self.timestamp}"

    def snapshot_label(self, prefix: str) -> str:
        return f"{prefix}-{self.timestamp}"


class ProvisionedBucket(BaseModel):
    """Bucket used by the run. Never deleted by ec2backup."""

    name: str
    region: str
    created: bool
    versioning: str | None = "Enabled"
    encryption: str | None = "AES256"
    warnings: list[str] = Field(default_factory=list)


class ProvisionedIdentity(BaseModel):
    """IAM role + inline policy + instance profile for a new instance."""

    role_name: str
    role_arn: str | None = None
    policy_name: str
    trust_policy: dict
    policy_document: dict
    instance_profile_name: str


class ProvisionedNetwork(BaseModel):
    vpc_id: str
    security_group_id: str
    ingress_port: int = 22
    ingress_cidr: str = "0.0.0.0/0"
    ingress_authorized: bool = True


class KeyMaterial(BaseModel):
    """Key pair created for the run. The private key is only returned once."""

    key_name: str
    key_path: Path
    fingerprint: str | None = None
    private_key: bytes = Field(repr=False, exclude=True)


class ComputeInstance(BaseModel):
    instance_id: str
    public_ip: str | None = None
    instance_profile_name: str | None = None
    volume_ids: list[str] = Field(default_factory=list)
    created: bool = False

    @field_validator("public_ip", mode="before")
    @classmethod
    def _empty_address_is_unknown(cls, value):
        return value or None

    @property
    def address(self) -> str:
        return self.public_ip if self.public_ip is not None else "N/A"


class Snapshot(BaseModel):
    snapshot_id: str
    volume_id: str
    tag: str
    start_time: datetime | None = None


class SnapshotOutcome(BaseModel):
    """Result for one volume: a snapshot, an error, or a snapshot whose tagging failed."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    volume_id: str
    snapshot: Snapshot | None = None
    error: BackupError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ArchiveArtifact(BaseModel):
    path: Path
    source_type: Literal["file", "directory"]
    compressed: bool
    size: int
    bucket: str | None = None
    key: str | None = None

    @property
    def s3_uri(self) -> str | None:
        if self.bucket is None:
            return None
        return f"s3://{self.bucket}/{self.key}"


class EventRecord(BaseModel):
    """Summary of one S3 notification record, in the shape written to the logs."""

    model_config = ConfigDict(populate_by_name=True)

    bucket: str | None = None
    key: str | None = None
    size: int | None = None
    event_time: str | None = Field(default=None, alias="eventTime")
    event_name: str | None = Field(default=None, alias="eventName")
    principal: dict = Field(default_factory=dict)

    @classmethod
    def from_s3_record(cls, record: dict) -> "EventRecord":
        s3 = record.get("s3", {})
        obj = s3.get("object", {})
        size = obj.get("size")
        # Delete events carry no size
        if not isinstance(size, int) or isinstance(size, bool):
            size = None
        return cls(
            bucket=s3.get("bucket", {}).get("name"),
            key=obj.get("key"),
            size=size,
            event_time=record.get("eventTime"),
            event_name=record.get("eventName"),
            principal=record.get("userIdentity") or {},
        )


class MetricsBatch(BaseModel):
    object_count: int = 0
    total_bytes: int = 0
    error_count: int = 0


class RunResult(BaseModel):
    """Everything a run touched, for the final report."""

    bucket: ProvisionedBucket
    identity: ProvisionedIdentity | None = None
    network: ProvisionedNetwork | None = None
    key: KeyMaterial | None = None
    instance: ComputeInstance | None = None
    artifact: ArchiveArtifact
    snapshots: list[SnapshotOutcome] = Field(default_factory=list)

    @property
    def failed_snapshots(self) -> list[SnapshotOutcome]:
        return [outcome for outcome in self.snapshots if not outcome.ok]

    def check_snapshots(self) -> None:
        """
        Raises:
            PartialFailure: If any volume snapshot (or its tagging) failed
        """
        failed = self.failed_snapshots
        if failed:
            volumes = ", ".join(outcome.volume_id for outcome in failed)
            raise PartialFailure(f"{len(failed)}/{len(self.snapshots)} volume snapshots failed: {volumes}", failed)
