"""AWS Lambda handler for S3 change notifications.

NO try-catch blocks - errors propagate so Lambda records an invocation error
and the Errors alarm fires.
"""

import json
import logging

from ec2backup.core.config import config
from ec2backup.core.events import EventMetricsProcessor
from ec2backup.core.metrics import MetricsClient
from ec2backup.core.models import EventRecord

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event: dict, context) -> dict:
    """
    Lambda entry point.

    Logs one JSON line per step (Logs Insights friendly) and emits
    ProcessedObjects / ProcessedBytes to the configured namespace.

    Args:
        event: S3 notification event with a Records list
        context: Lambda context

    Returns:
        {"statusCode": 200, "body": '{"processed": n, "bytes": b}'}

    Raises:
        PoisonRecordError: If a record key contains the poison marker
    """
    records = event.get("Records", [])
    logger.info(json.dumps({"message": "Lambda invoked", "event_summary": {"records": len(records)}}))
    logger.info(json.dumps({"raw_event": event}, default=str))

    parsed = [EventRecord.from_s3_record(record) for record in records]

    processor = EventMetricsProcessor(MetricsClient(config.metric_namespace), poison_marker=config.poison_marker)
    batch = processor.process(parsed)

    return {
        "statusCode": 200,
        "body": json.dumps({"processed": batch.object_count, "bytes": batch.total_bytes}),
    }
