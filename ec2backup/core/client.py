"""AWS client wrapper - the single place where region and profile are bound.

Every botocore ClientError is re-raised as ProviderError with the provider's
code and message untouched. Mutating calls are never retried; read-only calls
get a small bounded retry on throttling and timeouts.
"""

import json
import logging
import threading
import time
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import ClientError, ConnectTimeoutError, ReadTimeoutError

from ec2backup.core.config import BackupSettings, config
from ec2backup.core.errors import CallTimeoutError, ProviderError

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalError",
        "ServiceUnavailable",
        "RequestTimeout",
    }
)


class CloudClient:
    """High-level AWS operations used by the provisioners."""

    def __init__(self, region: str, profile: str | None = None, settings: BackupSettings = config):
        self.region = region
        self.profile = profile
        self.settings = settings
        self.session = boto3.Session(profile_name=profile, region_name=region)
        self._botocore_config = Config(
            connect_timeout=settings.call_timeout_seconds,
            read_timeout=settings.call_timeout_seconds,
            retries={"max_attempts": 1, "mode": "standard"},
        )
        self._clients = {}
        self._lock = threading.Lock()

    def _client(self, service: str):
        with self._lock:
            if service not in self._clients:
                self._clients[service] = self.session.client(service, config=self._botocore_config)
            return self._clients[service]

    def _call(self, service: str, operation: str, resource: str | None = None, **kwargs):
        """Invoke one API operation and translate botocore failures."""
        method = getattr(self._client(service), operation)
        try:
            return method(**kwargs)
        except ClientError as e:
            raise ProviderError.from_client_error(operation, e, resource) from e
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise CallTimeoutError(operation, str(e), resource) from e

    def _read(self, service: str, operation: str, resource: str | None = None, **kwargs):
        """Like _call, with bounded retry and linear backoff. Read-only operations only."""
        attempts = self.settings.read_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._call(service, operation, resource, **kwargs)
            except ProviderError as e:
                retryable = isinstance(e, CallTimeoutError) or e.code in RETRYABLE_CODES
                if not retryable or attempt == attempts:
                    raise
                delay = self.settings.read_retry_backoff_seconds * attempt
                logger.warning(f"{operation} attempt {attempt}/{attempts} failed ({e.code}), retrying in {delay}s")
                time.sleep(delay)

    # STS

    def get_caller_identity(self) -> dict:
        return self._read("sts", "get_caller_identity")

    # S3

    def create_bucket(self, bucket: str, location_constraint: str | None = None) -> dict:
        params = {"Bucket": bucket}
        if location_constraint:
            params["CreateBucketConfiguration"] = {"LocationConstraint": location_constraint}
        return self._call("s3", "create_bucket", f"bucket {bucket}", **params)

    def head_bucket(self, bucket: str) -> dict:
        return self._read("s3", "head_bucket", f"bucket {bucket}", Bucket=bucket)

    def put_bucket_versioning(self, bucket: str) -> None:
        self._call(
            "s3",
            "put_bucket_versioning",
            f"bucket {bucket}",
            Bucket=bucket,
            VersioningConfiguration={"Status": "Enabled"},
        )

    def put_bucket_encryption(self, bucket: str, algorithm: str = "AES256") -> None:
        self._call(
            "s3",
            "put_bucket_encryption",
            f"bucket {bucket}",
            Bucket=bucket,
            ServerSideEncryptionConfiguration={
                "Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": algorithm}}]
            },
        )

    def upload_file(self, path: Path, bucket: str, key: str) -> None:
        target = f"s3://{bucket}/{key}"
        try:
            self._call("s3", "upload_file", target, Filename=str(path), Bucket=bucket, Key=key)
        except S3UploadFailedError as e:
            raise ProviderError("upload_file", "S3UploadFailed", str(e), target) from e

    def list_objects(self, bucket: str, prefix: str = "") -> list[dict]:
        paginator = self._client("s3").get_paginator("list_objects_v2")
        objects = []
        try:
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                objects.extend(page.get("Contents", []))
        except ClientError as e:
            raise ProviderError.from_client_error("list_objects_v2", e, f"bucket {bucket}") from e
        return objects

    def copy_object(self, source_bucket: str, source_key: str, bucket: str, key: str) -> dict:
        return self._call(
            "s3",
            "copy_object",
            f"s3://{bucket}/{key}",
            CopySource={"Bucket": source_bucket, "Key": source_key},
            Bucket=bucket,
            Key=key,
        )

    # IAM

    def create_role(self, role_name: str, trust_policy: dict) -> dict:
        response = self._call(
            "iam",
            "create_role",
            f"IAM role {role_name}",
            RoleName=role_name,
            AssumeRolePolicyDocument=json.dumps(trust_policy),
        )
        return response["Role"]

    def get_role(self, role_name: str) -> dict:
        return self._call("iam", "get_role", f"IAM role {role_name}", RoleName=role_name)["Role"]

    def put_role_policy(self, role_name: str, policy_name: str, document: dict) -> None:
        self._call(
            "iam",
            "put_role_policy",
            f"IAM policy {policy_name}",
            RoleName=role_name,
            PolicyName=policy_name,
            PolicyDocument=json.dumps(document),
        )

    def create_instance_profile(self, profile_name: str) -> dict:
        response = self._call(
            "iam",
            "create_instance_profile",
            f"instance profile {profile_name}",
            InstanceProfileName=profile_name,
        )
        return response["InstanceProfile"]

    def get_instance_profile(self, profile_name: str) -> dict:
        response = self._call(
            "iam",
            "get_instance_profile",
            f"instance profile {profile_name}",
            InstanceProfileName=profile_name,
        )
        return response["InstanceProfile"]

    def add_role_to_instance_profile(self, profile_name: str, role_name: str) -> None:
        self._call(
            "iam",
            "add_role_to_instance_profile",
            f"instance profile {profile_name}",
            InstanceProfileName=profile_name,
            RoleName=role_name,
        )

    # EC2

    def describe_vpcs(self) -> list[dict]:
        return self._read("ec2", "describe_vpcs")["Vpcs"]

    def create_security_group(self, group_name: str, description: str, vpc_id: str) -> str:
        response = self._call(
            "ec2",
            "create_security_group",
            f"security group {group_name}",
            GroupName=group_name,
            Description=description,
            VpcId=vpc_id,
        )
        return response["GroupId"]

    def authorize_ingress(self, group_id: str, port: int, cidr: str, protocol: str = "tcp") -> None:
        self._call(
            "ec2",
            "authorize_security_group_ingress",
            f"security group {group_id}",
            GroupId=group_id,
            IpPermissions=[
                {
                    "IpProtocol": protocol,
                    "FromPort": port,
                    "ToPort": port,
                    "IpRanges": [{"CidrIp": cidr}],
                }
            ],
        )

    def create_key_pair(self, key_name: str) -> dict:
        return self._call("ec2", "create_key_pair", f"key pair {key_name}", KeyName=key_name)

    def describe_images(self, owners: list[str], filters: list[dict]) -> list[dict]:
        return self._read("ec2", "describe_images", Owners=owners, Filters=filters)["Images"]

    def run_instance(self, **params) -> dict:
        response = self._call("ec2", "run_instances", "instance", MinCount=1, MaxCount=1, **params)
        return response["Instances"][0]

    def describe_instances(self, instance_id: str) -> list[dict]:
        response = self._read("ec2", "describe_instances", f"instance {instance_id}", InstanceIds=[instance_id])
        return [instance for reservation in response["Reservations"] for instance in reservation["Instances"]]

    def create_snapshot(self, volume_id: str, description: str) -> dict:
        return self._call(
            "ec2",
            "create_snapshot",
            f"volume {volume_id}",
            VolumeId=volume_id,
            Description=description,
        )

    def create_tags(self, resource_ids: list[str], tags: list[dict]) -> None:
        self._call("ec2", "create_tags", ", ".join(resource_ids), Resources=resource_ids, Tags=tags)
