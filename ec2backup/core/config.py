"""Configuration management using Pydantic Settings.

NO try-catch blocks - let Pydantic raise ValidationError if env vars are malformed.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackupSettings(BaseSettings):
    """Global defaults - loads from environment variables or .env file."""

    # AWS
    aws_region: str = Field(default="us-east-1", description="AWS region")
    aws_profile: str | None = Field(default=None, description="AWS profile name")

    # Compute
    instance_type: str = Field(default="t3.micro", description="EC2 instance type")
    instance_name: str = Field(default="ec2-backup-instance", description="Name tag for new instances")
    ami_name_filter: str = Field(default="amzn2-ami-hvm-*-x86_64-gp2", description="AMI name filter")
    ami_owner: str = Field(default="137112412989", description="AMI owner account")

    # Local paths
    backup_base_dir: str = Field(default="/tmp/ec2-backup", description="Scratch directory for archives and logs")
    key_dir: str = Field(default=".", description="Directory for generated private keys")

    # Snapshots
    snapshot_tag: str = Field(default="AutoBackup", description="Snapshot name tag prefix")
    snapshot_workers: int = Field(default=4, ge=1, le=16, description="Parallel snapshot workers")

    # Provider calls
    call_timeout_seconds: int = Field(default=30, gt=0, description="Per-call connect/read timeout")
    read_retry_attempts: int = Field(default=3, ge=1, description="Attempts for read-only calls")
    read_retry_backoff_seconds: float = Field(default=1.0, ge=0, description="Base backoff between read retries")
    propagation_timeout_seconds: int = Field(default=60, gt=0, description="Max wait for IAM propagation")
    propagation_poll_seconds: float = Field(default=2.0, gt=0, description="IAM propagation poll interval")

    # Event monitoring
    metric_namespace: str = Field(default="S3LambdaMonitor", description="CloudWatch custom metric namespace")
    poison_marker: str = Field(default="fail", description="Key substring that triggers a synthetic failure")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


# Singleton instance
config = BackupSettings()
