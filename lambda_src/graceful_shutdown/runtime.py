"""Client and invocation loop for the Lambda Runtime API.

The container entrypoint replaces the managed runtime, so this module is the
loop that pulls invocations from ``/runtime/invocation/next`` and hands each
event to the function handler.
"""
import asyncio
import inspect
import json
import logging
import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from graceful_shutdown import config
from graceful_shutdown.context import LambdaContext
from graceful_shutdown.errors import RuntimeApiError

logger = logging.getLogger(__name__)

API_VERSION = "2018-06-01"

# Waiting for the next invocation can take as long as the environment stays frozen.
LONG_POLL = aiohttp.ClientTimeout(total=None)
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


@dataclass
class Invocation:
    request_id: str
    event: Any
    context: LambdaContext


def is_async(fn) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


def error_payload(exc: BaseException) -> dict:
    return {
        "errorMessage": str(exc),
        "errorType": type(exc).__name__,
        "stackTrace": traceback.format_exception(type(exc), exc, exc.__traceback__),
    }


class RuntimeClient:
    def __init__(self, runtime_api: Optional[str] = None):
        self.base_url = f"http://{runtime_api or config.RUNTIME_API}/{API_VERSION}/runtime"
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def next_invocation(self) -> Invocation:
        session = await self._get_session()
        path = "/invocation/next"
        async with session.get(self.base_url + path, timeout=LONG_POLL) as resp:
            body = await resp.text()
            if resp.status != 200:
                raise RuntimeApiError(path, resp.status, body)
            context = LambdaContext.from_headers(resp.headers)
        return Invocation(
            request_id=context.aws_request_id,
            event=json.loads(body) if body else {},
            context=context,
        )

    async def _post(self, path: str, payload, headers=None):
        session = await self._get_session()
        if not isinstance(payload, str):
            payload = json.dumps(payload)
        headers = {"Content-Type": "application/json", **(headers or {})}
        async with session.post(
            self.base_url + path, data=payload, headers=headers, timeout=REQUEST_TIMEOUT
        ) as resp:
            if resp.status >= 300:
                raise RuntimeApiError(path, resp.status, await resp.text())

    async def post_response(self, request_id: str, payload):
        await self._post(f"/invocation/{request_id}/response", payload)

    async def post_error(self, request_id: str, exc: BaseException):
        await self._post(
            f"/invocation/{request_id}/error",
            error_payload(exc),
            headers={"Lambda-Runtime-Function-Error-Type": "Unhandled"},
        )

    async def post_init_error(self, exc: BaseException):
        await self._post(
            "/init/error",
            error_payload(exc),
            headers={"Lambda-Runtime-Function-Error-Type": f"Runtime.{type(exc).__name__}"},
        )


class RuntimeDriver:
    """Pulls invocations one at a time and answers each with the handler's result.

    ``idle`` is set whenever no invocation is being processed, so a shutdown
    can wait for the current one before cancelling the loop.
    """

    def __init__(self, client: RuntimeClient, handler):
        self.client = client
        self.handler = handler
        self.idle = asyncio.Event()
        self.idle.set()
        self.invocations = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="handler")

    async def run(self, stopping: asyncio.Event):
        try:
            while not stopping.is_set():
                invocation = await self.client.next_invocation()
                self.idle.clear()
                try:
                    await self._handle(invocation)
                finally:
                    self.idle.set()
        finally:
            # Never wait for a handler thread that was abandoned by a cancellation.
            self._executor.shutdown(wait=False)

    async def _handle(self, invocation: Invocation):
        request_id = invocation.request_id
        os.environ["_X_AMZN_TRACE_ID"] = invocation.context.trace_id
        try:
            result = await self._call(invocation)
            body = json.dumps(result)
        except Exception as e:
            logger.exception(f"invocation {request_id} failed")
            await self.client.post_error(request_id, e)
        else:
            await self.client.post_response(request_id, body)
        finally:
            os.environ.pop("_X_AMZN_TRACE_ID", None)
            self.invocations += 1

    async def _call(self, invocation: Invocation):
        if is_async(self.handler):
            return await self.handler(invocation.event, invocation.context)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            self._executor, self.handler, invocation.event, invocation.context
        )
        # a sync wrapper may still hand back a coroutine
        if inspect.isawaitable(result):
            result = await result
        return result
