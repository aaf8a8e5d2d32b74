import json
import platform
import sys
from types import SimpleNamespace

import pytest

from graceful_shutdown.errors import MissingFieldError
from graceful_shutdown.handler import handler, source_ip

CONTEXT = SimpleNamespace(aws_request_id="req-1")


def test_handler_returns_caller_ip_and_platform(apigw_event):
    resp = handler(apigw_event("203.0.113.7"), CONTEXT)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body == {
        "message": "hello python",
        "source ip": "203.0.113.7",
        "architecture": platform.machine(),
        "operating system": sys.platform,
    }


@pytest.mark.parametrize(
    "event",
    [
        {},
        {"requestContext": {}},
        {"requestContext": {"identity": None}},
        {"requestContext": {"identity": {}}},
        {"requestContext": {"identity": {"sourceIp": ""}}},
        {"requestContext": "not-a-mapping"},
    ],
)
def test_missing_source_ip_is_rejected_not_substituted(event):
    resp = handler(event, CONTEXT)

    assert resp["statusCode"] == 400
    body = json.loads(resp["body"])
    assert body == {"message": "missing field: requestContext.identity.sourceIp"}
    assert "source ip" not in body


def test_source_ip_names_the_missing_path():
    with pytest.raises(MissingFieldError) as excinfo:
        source_ip({"requestContext": {"identity": {}}})
    assert excinfo.value.path == "requestContext.identity.sourceIp"


def test_response_survives_json_round_trip(apigw_event):
    resp = handler(apigw_event("2001:db8::1"), CONTEXT)

    decoded = json.loads(json.dumps(resp))
    assert decoded == resp
    assert isinstance(decoded["statusCode"], int)
    assert json.loads(decoded["body"])["source ip"] == "2001:db8::1"
