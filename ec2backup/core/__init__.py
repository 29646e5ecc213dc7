"""Core building blocks for ec2backup."""

from ec2backup.core.client import CloudClient
from ec2backup.core.config import config
from ec2backup.core.models import RunConfig, RunResult

__all__ = ["CloudClient", "config", "RunConfig", "RunResult"]
