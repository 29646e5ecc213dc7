"""CloudWatch custom metrics for the S3 event monitor.

Emission failures are logged, never raised: a metrics outage must not mask the
error that is being reported.
"""

import logging

import boto3
from botocore.config import Config

from ec2backup.core.config import BackupSettings, config

logger = logging.getLogger(__name__)


def cloudwatch_client(settings: BackupSettings = config):
    """CloudWatch client bounded by the same per-call timeout as CloudClient."""
    return boto3.client(
        "cloudwatch",
        config=Config(
            connect_timeout=settings.call_timeout_seconds,
            read_timeout=settings.call_timeout_seconds,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(self, namespace: str = "S3LambdaMonitor", cloudwatch=None):
        self.namespace = namespace
        self.cloudwatch = cloudwatch or cloudwatch_client()

    @staticmethod
    def build_metric_data(
        object_count: int | None,
        total_bytes: int | None,
        error_count: int = 0,
    ) -> list[dict]:
        """
        Build the MetricData entries for one batch.

        Entries whose value does not apply are left out: counts that are None,
        and ProcessingErrors unless it is nonzero.
        """
        metrics = []
        if object_count is not None:
            metrics.append({"MetricName": "ProcessedObjects", "Unit": "Count", "Value": object_count})
        if total_bytes is not None:
            metrics.append({"MetricName": "ProcessedBytes", "Unit": "Bytes", "Value": total_bytes})
        if error_count:
            metrics.append({"MetricName": "ProcessingErrors", "Unit": "Count", "Value": error_count})
        return metrics

    def put_metrics(
        self,
        object_count: int | None,
        total_bytes: int | None,
        error_count: int = 0,
    ) -> bool:
        """
        Send one batch of metrics to CloudWatch.

        Args:
            object_count: ProcessedObjects value, or None to skip it
            total_bytes: ProcessedBytes value, or None to skip it
            error_count: ProcessingErrors value, skipped when zero

        Returns:
            True if a put_metric_data call succeeded
        """
        metrics = self.build_metric_data(object_count, total_bytes, error_count)
        if not metrics:
            return False

        try:
            self.cloudwatch.put_metric_data(Namespace=self.namespace, MetricData=metrics)
        except Exception as e:
            logger.exception(f"Failed to put custom metric data: {e}")
            return False
        return True
