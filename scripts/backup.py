#!/usr/bin/env python3
"""Provision an S3 bucket (and optionally an EC2 instance) and back up a path to it.

Example:
    python scripts/backup.py --source ~/projects
    python scripts/backup.py --source /etc/nginx/nginx.conf --bucket my-backups --instance-id i-0123 --no-compress
    python scripts/backup.py --source ~/data --region eu-west-1 --profile ops --no-snapshots
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Project .env applies even when run from another directory
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from ec2backup.core.client import CloudClient  # noqa: E402
from ec2backup.core.config import config  # noqa: E402
from ec2backup.core.errors import BackupError, PartialFailure  # noqa: E402
from ec2backup.core.models import RunConfig, RunResult  # noqa: E402
from ec2backup.orchestrator import BackupOrchestrator  # noqa: E402

logger = logging.getLogger("ec2backup")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="EC2 + S3 backup utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--region", "-r", default=config.aws_region, help=f"AWS region (default: {config.aws_region})")
    parser.add_argument("--profile", "-p", default=config.aws_profile, help="AWS CLI profile")
    parser.add_argument("--bucket", "-b", help="Existing S3 bucket (default: create a new one)")
    parser.add_argument("--instance-id", "-i", help="Existing EC2 instance ID (default: create a new one)")
    parser.add_argument("--source", "-s", default=str(Path.home()), help="Backup source path (default: $HOME)")
    parser.add_argument(
        "--instance-type", default=config.instance_type, help=f"Type for a new instance (default: {config.instance_type})"
    )
    parser.add_argument("--no-compress", action="store_true", help="Upload a plain .tar instead of .tar.gz")
    parser.add_argument("--no-snapshots", action="store_true", help="Skip EBS snapshots")
    parser.add_argument("--keep-archive", action="store_true", help="Keep the local archive after upload")

    return parser.parse_args(argv)


def build_run_config(args: argparse.Namespace) -> RunConfig:
    """Build the immutable RunConfig. Raises ValidationError before any AWS call."""
    return RunConfig(
        region=args.region,
        profile=args.profile,
        instance_type=args.instance_type,
        source_path=args.source,
        compress=not args.no_compress,
        snapshots_enabled=not args.no_snapshots,
        existing_bucket=args.bucket,
        existing_instance_id=args.instance_id,
        keep_archive=args.keep_archive,
    )


def configure_logging(log_file: Path) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(log_file)],
    )


def print_summary(run_config: RunConfig) -> None:
    print("\n" + "=" * 70)
    print("EC2 + S3 Backup - Configuration")
    print("=" * 70)
    print(f"  Region          : {run_config.region}")
    print(f"  AWS Profile     : {run_config.profile or '<default>'}")
    print(f"  S3 Bucket       : {run_config.existing_bucket or '<create new>'}")
    print(f"  EC2 Instance ID : {run_config.existing_instance_id or '<create new>'}")
    print(f"  Backup Source   : {run_config.source_path}")
    print(f"  Snapshots       : {'yes' if run_config.snapshots_enabled else 'no'}")
    print(f"  Compression     : {'yes' if run_config.compress else 'no'}")
    print("=" * 70 + "\n")


def print_result(result: RunResult, log_file: Path) -> None:
    print("\n" + "=" * 70)
    print(f"✅ Backup uploaded to {result.artifact.s3_uri}")
    if result.instance and result.instance.created:
        print(f"   EC2 instance : {result.instance.instance_id} (Public IP: {result.instance.address})")
        print(f"   IAM role     : {result.identity.role_name}")
        if result.key and result.instance.public_ip:
            print(f"   To SSH       : ssh -i {result.key.key_path} ec2-user@{result.instance.public_ip}")
    for outcome in result.snapshots:
        if outcome.ok:
            print(f"   📸 {outcome.volume_id} -> {outcome.snapshot.snapshot_id}")
        else:
            print(f"   ❌ {outcome.volume_id}: {outcome.error}")
    print(f"   Logs stored at: {log_file}")
    print("=" * 70)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        run_config = build_run_config(args)
    except BackupError as e:
        print(f"❌ {e}")
        return 1

    log_file = Path(config.backup_base_dir) / f"backup_{run_config.timestamp}.log"
    configure_logging(log_file)
    print_summary(run_config)

    client = CloudClient(run_config.region, run_config.profile)
    try:
        identity = client.get_caller_identity()
        logger.info(f"Using AWS account {identity['Account']} as {identity['Arn']}")
        result = BackupOrchestrator(client).run(run_config)
    except BackupError as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("❌ Interrupted")
        return 130

    print_result(result, log_file)
    try:
        result.check_snapshots()
    except PartialFailure as e:
        logger.warning(f"⚠️  {e}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
