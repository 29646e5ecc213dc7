"""Aggregation of S3 change notifications into structured logs and metrics."""

import json
import logging

from ec2backup.core.errors import PoisonRecordError
from ec2backup.core.metrics import MetricsClient
from ec2backup.core.models import EventRecord, MetricsBatch

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def build_summary(records: list[EventRecord], total_bytes: int) -> dict:
    """Structured log entry. The shape is relied on by Logs Insights queries."""
    return {
        "s3_event": {
            "record_count": len(records),
            "total_bytes": total_bytes,
            "records": [record.model_dump(by_alias=True) for record in records],
        }
    }


class EventMetricsProcessor:
    """Turns one notification batch into a log summary and a MetricsBatch.

    Holds no per-batch state, so one instance may serve concurrent invocations.
    """

    def __init__(self, metrics: MetricsClient, poison_marker: str = "fail"):
        self.metrics = metrics
        self.poison_marker = poison_marker

    def process(self, records: list[EventRecord]) -> MetricsBatch:
        """
        Aggregate a batch and emit ProcessedObjects/ProcessedBytes.

        Args:
            records: Parsed notification records

        Returns:
            MetricsBatch with object and byte totals

        Raises:
            PoisonRecordError: If a key contains the poison marker. The summary
                so far is logged and ProcessingErrors=1 is emitted first.
        """
        seen = []
        total_bytes = 0

        try:
            for record in records:
                seen.append(record)
                if record.size is not None:
                    total_bytes += record.size

                if record.key and self.poison_marker in record.key:
                    logger.info(json.dumps(build_summary(seen, total_bytes)))
                    raise PoisonRecordError(record.key)
        except Exception as e:
            logger.exception(f"Processing failed: {e}")
            self.metrics.put_metrics(object_count=0, total_bytes=0, error_count=1)
            raise

        logger.info(json.dumps(build_summary(seen, total_bytes)))
        self.metrics.put_metrics(object_count=len(seen), total_bytes=total_bytes, error_count=0)

        return MetricsBatch(object_count=len(seen), total_bytes=total_bytes)
