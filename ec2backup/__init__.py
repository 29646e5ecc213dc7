"""ec2backup - S3/EC2 backup provisioning and S3 event monitoring."""

__version__ = "1.0.0"

from ec2backup.core.config import config
from ec2backup.core.models import RunConfig, RunResult

__all__ = ["config", "RunConfig", "RunResult", "__version__"]
