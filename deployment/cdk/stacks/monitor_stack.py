"""CDK Stack for the S3 event monitor: bucket -> Lambda -> logs, metrics, alarm."""

import os

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
)
from aws_cdk import (
    aws_cloudwatch as cloudwatch,
)
from aws_cdk import (
    aws_ecr_assets as ecr_assets,
)
from aws_cdk import (
    aws_iam as iam,
)
from aws_cdk import (
    aws_lambda as lambda_,
)
from aws_cdk import (
    aws_logs as logs,
)
from aws_cdk import (
    aws_s3 as s3,
)
from aws_cdk import (
    aws_s3_notifications as s3n,
)
from constructs import Construct

# Project root directory (where Dockerfile is located)
# deployment/cdk/stacks/monitor_stack.py → go up 4 levels to project root
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

MONITORED_EVENTS = (
    s3.EventType.OBJECT_CREATED,
    s3.EventType.OBJECT_REMOVED,
    s3.EventType.OBJECT_RESTORE_COMPLETED,
    s3.EventType.OBJECT_TAGGING,
)


class MonitorStack(Stack):
    """CDK Stack defining the S3 event monitoring infrastructure."""

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        metric_namespace = self.node.try_get_context("metricNamespace") or "S3LambdaMonitor"

        # Execution role: logs, read-only S3, custom metrics
        self.role = iam.Role(
            self,
            "LambdaExecutionRole",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AWSLambdaBasicExecutionRole"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonS3ReadOnlyAccess"),
            ],
            inline_policies={
                "PutCloudWatchMetrics": iam.PolicyDocument(
                    statements=[
                        iam.PolicyStatement(
                            sid="PutMetrics",
                            actions=["cloudwatch:PutMetricData"],
                            resources=["*"],
                        )
                    ]
                )
            },
        )

        # Lambda Function
        self.lambda_function = lambda_.DockerImageFunction(
            self,
            "EventMonitorFunction",
            code=lambda_.DockerImageCode.from_image_asset(
                PROJECT_ROOT,
                platform=ecr_assets.Platform.LINUX_AMD64,
                exclude=["cdk.out", ".git", "tests", "deployment", "*.md"],
            ),
            role=self.role,
            memory_size=256,
            timeout=Duration.seconds(60),
            environment={"METRIC_NAMESPACE": metric_namespace},
        )

        self.log_group = logs.LogGroup(
            self,
            "LambdaLogGroup",
            log_group_name=f"/aws/lambda/{self.lambda_function.function_name}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # Monitored bucket: every change triggers the Lambda
        self.bucket = s3.Bucket(
            self,
            "MonitoredBucket",
            removal_policy=RemovalPolicy.RETAIN,
            encryption=s3.BucketEncryption.S3_MANAGED,
        )
        destination = s3n.LambdaDestination(self.lambda_function)
        for event_type in MONITORED_EVENTS:
            self.bucket.add_event_notification(event_type, destination)

        # Alarm when the Lambda reports >= 1 error in 1 minute
        self.errors_alarm = cloudwatch.Alarm(
            self,
            "LambdaErrorsAlarm",
            alarm_name=f"{self.stack_name}-LambdaErrorsAlarm",
            alarm_description="Alarm when Lambda reports one or more Errors in a 1-minute period",
            metric=self.lambda_function.metric_errors(period=Duration.minutes(1), statistic="Sum"),
            threshold=1,
            evaluation_periods=1,
            comparison_operator=cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
            treat_missing_data=cloudwatch.TreatMissingData.NOT_BREACHING,
        )

        # Outputs
        CfnOutput(self, "LambdaArn", value=self.lambda_function.function_arn, description="Lambda function ARN")
        CfnOutput(
            self,
            "LambdaName",
            value=self.lambda_function.function_name,
            description="Auto-generated Lambda function name",
        )
        CfnOutput(
            self,
            "BucketName",
            value=self.bucket.bucket_name,
            description="S3 bucket name (any change triggers Lambda, structured logs + metrics)",
        )
        CfnOutput(
            self,
            "MetricNamespace",
            value=metric_namespace,
            description="Custom metric namespace where ProcessedObjects/ProcessedBytes are emitted",
        )
        CfnOutput(
            self,
            "LambdaErrorsAlarmName",
            value=self.errors_alarm.alarm_name,
            description="CloudWatch alarm name for Lambda errors",
        )
