import json
import logging
import platform
import sys

from graceful_shutdown import config
from graceful_shutdown.errors import MissingFieldError

logger = logging.getLogger(__name__)

SOURCE_IP_PATH = ("requestContext", "identity", "sourceIp")


def source_ip(event) -> str:
    node = event
    for key in SOURCE_IP_PATH:
        if not isinstance(node, dict) or node.get(key) is None:
            raise MissingFieldError(".".join(SOURCE_IP_PATH))
        node = node[key]
    if not node:
        raise MissingFieldError(".".join(SOURCE_IP_PATH))
    return str(node)


def handler(event, context):
    logger.debug(f"invocation {getattr(context, 'aws_request_id', '?')}")
    try:
        ip = source_ip(event)
    except MissingFieldError as e:
        logger.warning(f"rejecting invocation: {e}")
        return {
            "statusCode": 400,
            "body": json.dumps({"message": str(e)}),
        }

    payload = {
        "message": config.MESSAGE,
        "source ip": ip,
        "architecture": platform.machine(),
        "operating system": sys.platform,
    }
    return {
        "statusCode": 200,
        "body": json.dumps(payload),
    }
