#!/usr/bin/env python3
import aws_cdk as cdk
from graceful_shutdown_stack import GracefulShutdownStack

app = cdk.App()
GracefulShutdownStack(app, "GracefulShutdownStack")
app.synth()
