import os

# host:port of the Runtime and Extensions APIs, injected by Lambda
RUNTIME_API = os.environ.get("AWS_LAMBDA_RUNTIME_API", "127.0.0.1:9001")

# Internal extension names must be unique within a function.
EXTENSION_NAME = os.environ.get("EXTENSION_NAME", "no-op")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# How long an in-flight invocation may keep running after SIGTERM.
# 0 means cancel it immediately.
SHUTDOWN_GRACE_SECONDS = float(os.environ.get("SHUTDOWN_GRACE_SECONDS", "0"))

MESSAGE = "hello python"
