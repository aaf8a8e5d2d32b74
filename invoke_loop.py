import json
import time
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

import boto3

REGION = "us-west-2"
FUNCTION_NAME = "graceful-shutdown-python-internal-extension"

N_ROUNDS = 5
INTERVAL_SECONDS = 10

# Parallel invokes per round; each one beyond the warm pool starts a new environment
CONCURRENCY = 8

EXPECTED_KEYS = {"message", "source ip", "architecture", "operating system"}

lambda_client = boto3.client("lambda", region_name=REGION)


def setup_logger():
    logger = logging.getLogger("invoke_loop")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    return logger


def api_gateway_event(source_ip: str) -> dict:
    return {
        "resource": "/hello",
        "path": "/hello",
        "httpMethod": "GET",
        "requestContext": {"identity": {"sourceIp": source_ip}},
    }


def invoke_one(fname: str, source_ip: str):
    resp = lambda_client.invoke(
        FunctionName=fname,
        InvocationType="RequestResponse",
        Payload=json.dumps(api_gateway_event(source_ip)).encode("utf-8"),
    )
    payload = json.loads(resp["Payload"].read().decode("utf-8"))
    if "FunctionError" in resp:
        raise RuntimeError(f"{resp['FunctionError']}: {payload}")
    return payload


def check_response(payload: dict, source_ip: str) -> dict:
    if payload.get("statusCode") != 200:
        raise ValueError(f"unexpected status: {payload}")
    body = json.loads(payload["body"])
    if set(body) != EXPECTED_KEYS:
        raise ValueError(f"unexpected body keys: {sorted(body)}")
    if body["source ip"] != source_ip:
        raise ValueError(f"source ip {body['source ip']!r} != {source_ip!r}")
    return body


def run_round(fname: str, concurrency: int, logger) -> int:
    errors = 0
    with ThreadPoolExecutor(max_workers=concurrency) as ex:
        futures = {}
        for i in range(concurrency):
            ip = f"198.51.100.{i + 1}"
            futures[ex.submit(invoke_one, fname, ip)] = ip
        for fut in as_completed(futures):
            ip = futures[fut]
            try:
                body = check_response(fut.result(), ip)
            except Exception as e:
                errors += 1
                logger.warning(f"{fname} [{ip}] failed: {e}")
                continue
            logger.info(f"{fname} [{ip}] arch={body['architecture']} os={body['operating system']}")
    return errors


def main(rounds=N_ROUNDS, interval=INTERVAL_SECONDS):
    logger = setup_logger()

    total_errors = 0
    for round_num in range(1, rounds + 1):
        t0 = time.time()
        logger.info(f"=== Round {round_num}/{rounds} ===")

        errors = run_round(FUNCTION_NAME, CONCURRENCY, logger)
        total_errors += errors

        elapsed = time.time() - t0
        logger.info(f"Round summary: errors={errors} elapsed={elapsed:.1f}s")
        if round_num < rounds:
            time.sleep(max(0, interval - elapsed))

    # SIGTERM lines show up in the function's log group once idle environments are reclaimed.
    logger.info(f"DONE: {rounds} rounds, {total_errors} errors")
    return total_errors


if __name__ == "__main__":
    raise SystemExit(1 if main() else 0)
