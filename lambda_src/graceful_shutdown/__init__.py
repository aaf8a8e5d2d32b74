"""Hello-world Lambda function with a no-op extension for graceful shutdown."""

__version__ = "0.1.0"
