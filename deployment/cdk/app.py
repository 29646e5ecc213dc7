#!/usr/bin/env python3
"""CDK application entry point."""

import aws_cdk as cdk

from deployment.cdk.stacks.monitor_stack import MonitorStack

app = cdk.App()

MonitorStack(
    app,
    "S3LambdaMonitorStack",
    env=cdk.Environment(
        account=app.node.try_get_context("account"),
        region=app.node.try_get_context("region") or "us-east-1",
    ),
)

app.synth()
