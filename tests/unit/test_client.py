"""Tests for ec2backup/core/client.py against moto."""

import json

import boto3
import pytest
from botocore.exceptions import ClientError, ReadTimeoutError
from moto import mock_aws

from ec2backup.core.client import CloudClient
from ec2backup.core.errors import AlreadyExistsError, CallTimeoutError, ProviderError
from ec2backup.provision.identity import build_permission_policy, build_trust_policy


@pytest.fixture
def aws():
    with mock_aws():
        yield


class TestS3:
    """Tests for bucket operations."""

    def test_create_bucket_in_us_east_1(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)

        client.create_bucket("bkt-east")
        client.put_bucket_versioning("bkt-east")
        client.put_bucket_encryption("bkt-east")

        s3 = boto3.client("s3", region_name="us-east-1")
        assert s3.get_bucket_versioning(Bucket="bkt-east")["Status"] == "Enabled"
        rules = s3.get_bucket_encryption(Bucket="bkt-east")["ServerSideEncryptionConfiguration"]["Rules"]
        assert rules[0]["ApplyServerSideEncryptionByDefault"]["SSEAlgorithm"] == "AES256"

    def test_create_bucket_with_location_constraint(self, aws, settings):
        client = CloudClient("eu-west-1", settings=settings)

        client.create_bucket("bkt-eu", "eu-west-1")

        s3 = boto3.client("s3", region_name="eu-west-1")
        assert s3.get_bucket_location(Bucket="bkt-eu")["LocationConstraint"] == "eu-west-1"

    def test_duplicate_bucket_raises_already_exists(self, aws, settings):
        client = CloudClient("eu-west-1", settings=settings)
        client.create_bucket("bkt-dup", "eu-west-1")

        with pytest.raises(AlreadyExistsError) as excinfo:
            client.create_bucket("bkt-dup", "eu-west-1")

        assert excinfo.value.code in {"BucketAlreadyExists", "BucketAlreadyOwnedByYou"}
        assert excinfo.value.operation == "create_bucket"
        assert "bucket bkt-dup" in str(excinfo.value)

    def test_upload_file_and_list(self, aws, settings, tmp_path):
        client = CloudClient("us-east-1", settings=settings)
        client.create_bucket("bkt-up")
        archive = tmp_path / "backup.tar.gz"
        archive.write_bytes(b"data")

        client.upload_file(archive, "bkt-up", "backup.tar.gz")

        assert [o["Key"] for o in client.list_objects("bkt-up")] == ["backup.tar.gz"]

    def test_upload_to_missing_bucket_names_target(self, aws, settings, tmp_path):
        client = CloudClient("us-east-1", settings=settings)
        archive = tmp_path / "backup.tar"
        archive.write_bytes(b"data")

        with pytest.raises(ProviderError, match="s3://missing-bucket/backup.tar"):
            client.upload_file(archive, "missing-bucket", "backup.tar")

    def test_copy_object(self, aws, settings, tmp_path):
        client = CloudClient("us-east-1", settings=settings)
        client.create_bucket("bkt-copy")
        src = tmp_path / "a.tar"
        src.write_bytes(b"x")
        client.upload_file(src, "bkt-copy", "a.tar")

        client.copy_object("bkt-copy", "a.tar", "bkt-copy", "archive/a.tar")

        assert sorted(o["Key"] for o in client.list_objects("bkt-copy", "archive/")) == ["archive/a.tar"]


class TestIAM:
    """Tests for role and instance profile operations."""

    def test_role_and_profile(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)

        role = client.create_role("backup-role", build_trust_policy())
        client.put_role_policy("backup-role", "backup-policy", build_permission_policy("bkt"))
        client.create_instance_profile("backup-profile")
        client.add_role_to_instance_profile("backup-profile", "backup-role")

        assert role["RoleName"] == "backup-role"
        assert client.get_role("backup-role")["Arn"] == role["Arn"]
        profile = client.get_instance_profile("backup-profile")
        assert [r["RoleName"] for r in profile["Roles"]] == ["backup-role"]
        iam = boto3.client("iam", region_name="us-east-1")
        assert iam.list_role_policies(RoleName="backup-role")["PolicyNames"] == ["backup-policy"]

    def test_duplicate_role(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)
        client.create_role("dup-role", build_trust_policy())

        with pytest.raises(AlreadyExistsError, match="IAM role dup-role"):
            client.create_role("dup-role", build_trust_policy())

    def test_missing_role(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)

        with pytest.raises(ProviderError) as excinfo:
            client.get_role("ghost")

        assert excinfo.value.code == "NoSuchEntity"


class TestEC2:
    """Tests for network, key pair, instance and snapshot operations."""

    def test_security_group_and_ingress(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)
        vpc_id = client.describe_vpcs()[0]["VpcId"]

        group_id = client.create_security_group("backup-sg", "Backup SG", vpc_id)
        client.authorize_ingress(group_id, 22, "0.0.0.0/0")

        ec2 = boto3.client("ec2", region_name="us-east-1")
        group = ec2.describe_security_groups(GroupIds=[group_id])["SecurityGroups"][0]
        assert group["IpPermissions"][0]["FromPort"] == 22

    def test_key_pair_returns_material(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)

        response = client.create_key_pair("backup-key")

        assert "PRIVATE KEY" in response["KeyMaterial"]

    def test_run_describe_and_snapshot(self, aws, settings):
        client = CloudClient("us-east-1", settings=settings)
        image_id = boto3.client("ec2", region_name="us-east-1").describe_images()["Images"][0]["ImageId"]

        instance = client.run_instance(ImageId=image_id, InstanceType="t3.micro")
        described = client.describe_instances(instance["InstanceId"])
        volume_id = described[0]["BlockDeviceMappings"][0]["Ebs"]["VolumeId"]
        snapshot = client.create_snapshot(volume_id, "AutoBackup-test")
        client.create_tags([snapshot["SnapshotId"]], [{"Key": "Name", "Value": "AutoBackup-test"}])

        assert snapshot["VolumeId"] == volume_id


class TestErrorTranslation:
    """Tests for ClientError / timeout translation and read retries."""

    def test_client_error_code_and_message_preserved(self, settings, mocker):
        client = CloudClient("us-east-1", settings=settings)
        fake_s3 = mocker.MagicMock()
        fake_s3.create_bucket.side_effect = ClientError(
            {"Error": {"Code": "InvalidBucketName", "Message": "The specified bucket is not valid."}}, "CreateBucket"
        )
        client._clients["s3"] = fake_s3

        with pytest.raises(ProviderError) as excinfo:
            client.create_bucket("Bad_Name")

        assert excinfo.value.code == "InvalidBucketName"
        assert excinfo.value.message == "The specified bucket is not valid."
        assert isinstance(excinfo.value.__cause__, ClientError)

    def test_timeout_is_distinct(self, settings, mocker):
        client = CloudClient("us-east-1", settings=settings)
        fake_ec2 = mocker.MagicMock()
        fake_ec2.create_key_pair.side_effect = ReadTimeoutError(endpoint_url="https://ec2.amazonaws.com")
        client._clients["ec2"] = fake_ec2

        with pytest.raises(CallTimeoutError):
            client.create_key_pair("k")

    def test_read_calls_retry_on_throttling(self, settings, mocker):
        mocker.patch("ec2backup.core.client.time.sleep")
        client = CloudClient("us-east-1", settings=settings)
        fake_ec2 = mocker.MagicMock()
        fake_ec2.describe_vpcs.side_effect = [
            ClientError({"Error": {"Code": "RequestLimitExceeded", "Message": "slow down"}}, "DescribeVpcs"),
            {"Vpcs": [{"VpcId": "vpc-1"}]},
        ]
        client._clients["ec2"] = fake_ec2

        assert client.describe_vpcs() == [{"VpcId": "vpc-1"}]
        assert fake_ec2.describe_vpcs.call_count == 2

    def test_read_retry_is_bounded(self, settings, mocker):
        mocker.patch("ec2backup.core.client.time.sleep")
        client = CloudClient("us-east-1", settings=settings)
        fake_ec2 = mocker.MagicMock()
        fake_ec2.describe_images.side_effect = ClientError(
            {"Error": {"Code": "Throttling", "Message": "slow down"}}, "DescribeImages"
        )
        client._clients["ec2"] = fake_ec2

        with pytest.raises(ProviderError):
            client.describe_images(["owner"], [])

        assert fake_ec2.describe_images.call_count == settings.read_retry_attempts

    def test_create_calls_are_not_retried(self, settings, mocker):
        client = CloudClient("us-east-1", settings=settings)
        fake_ec2 = mocker.MagicMock()
        fake_ec2.create_security_group.side_effect = ClientError(
            {"Error": {"Code": "RequestLimitExceeded", "Message": "slow down"}}, "CreateSecurityGroup"
        )
        client._clients["ec2"] = fake_ec2

        with pytest.raises(ProviderError):
            client.create_security_group("sg", "d", "vpc-1")

        fake_ec2.create_security_group.assert_called_once()

    def test_policy_documents_sent_as_json(self, settings, mocker):
        client = CloudClient("us-east-1", settings=settings)
        fake_iam = mocker.MagicMock()
        client._clients["iam"] = fake_iam
        document = {"Version": "2012-10-17", "Statement": [{"Effect": "Allow"}]}

        client.put_role_policy("role", "policy", document)

        sent = fake_iam.put_role_policy.call_args.kwargs["PolicyDocument"]
        assert json.loads(sent) == document
