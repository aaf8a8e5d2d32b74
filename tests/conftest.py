import asyncio
import time
import uuid

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


class FakeLambdaApi:
    """In-process stand-in for the Lambda Runtime and Extensions APIs."""

    def __init__(self):
        self.invocations = asyncio.Queue()
        self.extension_events = asyncio.Queue()
        self.calls = []  # (name, monotonic time) in arrival order
        self.results = {}  # request id -> ("response" | "error", body, headers)
        self.init_errors = []
        self.registrations = []
        self.extension_headers = []
        self.register_status = 200
        self.extension_id = "ext-0123"
        self.next_status = 200
        self.response_status = 202
        self.polled = asyncio.Event()
        self._result_events = {}
        self.address = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/2018-06-01/runtime/invocation/next", self._next)
        app.router.add_post("/2018-06-01/runtime/invocation/{request_id}/response", self._response)
        app.router.add_post("/2018-06-01/runtime/invocation/{request_id}/error", self._error)
        app.router.add_post("/2018-06-01/runtime/init/error", self._runtime_init_error)
        app.router.add_post("/2020-01-01/extension/register", self._register)
        app.router.add_get("/2020-01-01/extension/event/next", self._extension_next)
        app.router.add_post("/2020-01-01/extension/init/error", self._extension_init_error)
        return app

    def invoke(self, event, request_id=None, deadline_ms=None, trace_id="Root=1-abc-def"):
        request_id = request_id or str(uuid.uuid4())
        if deadline_ms is None:
            deadline_ms = int(time.time() * 1000) + 3000
        headers = {
            "Lambda-Runtime-Aws-Request-Id": request_id,
            "Lambda-Runtime-Deadline-Ms": str(deadline_ms),
            "Lambda-Runtime-Invoked-Function-Arn": "arn:aws:lambda:us-west-2:123456789012:function:hello",
            "Lambda-Runtime-Trace-Id": trace_id,
        }
        self._result_event(request_id)
        self.invocations.put_nowait((event, headers))
        return request_id

    async def wait_for_result(self, request_id, timeout=2):
        await asyncio.wait_for(self._result_event(request_id).wait(), timeout)
        return self.results[request_id]

    def release(self):
        # Unblock long polls still parked when the test is over.
        for _ in range(8):
            self.invocations.put_nowait(None)
            self.extension_events.put_nowait(None)

    def _result_event(self, request_id):
        return self._result_events.setdefault(request_id, asyncio.Event())

    def _record(self, name):
        self.calls.append((name, time.monotonic()))

    def call_names(self):
        return [name for name, _ in self.calls]

    async def _next(self, request):
        self._record("next")
        self.polled.set()
        if self.next_status != 200:
            return web.Response(status=self.next_status, text="runtime api unavailable")
        item = await self.invocations.get()
        if item is None:
            return web.Response(status=410)
        event, headers = item
        return web.json_response(event, headers=headers)

    async def _store(self, request, kind):
        request_id = request.match_info["request_id"]
        self._record(kind)
        self.results[request_id] = (kind, await request.json(), dict(request.headers))
        self._result_event(request_id).set()
        return web.json_response({"status": "OK"}, status=self.response_status)

    async def _response(self, request):
        return await self._store(request, "response")

    async def _error(self, request):
        return await self._store(request, "error")

    async def _runtime_init_error(self, request):
        self._record("runtime-init-error")
        self.init_errors.append(("runtime", await request.json(), dict(request.headers)))
        return web.json_response({"status": "OK"}, status=202)

    async def _register(self, request):
        body = await request.json()
        self.registrations.append((request.headers.get("Lambda-Extension-Name"), body["events"]))
        self._record("register")
        if self.register_status != 200:
            return web.Response(status=self.register_status, text="extension name already registered")
        headers = {"Lambda-Extension-Identifier": self.extension_id} if self.extension_id else {}
        return web.json_response({"functionName": "hello", "functionVersion": "$LATEST"}, headers=headers)

    async def _extension_next(self, request):
        self._record("extension-next")
        self.extension_headers.append(dict(request.headers))
        item = await self.extension_events.get()
        if item is None:
            return web.Response(status=410)
        return web.json_response(item)

    async def _extension_init_error(self, request):
        self._record("extension-init-error")
        self.init_errors.append(("extension", await request.json(), dict(request.headers)))
        return web.json_response({"status": "OK"}, status=202)


@pytest_asyncio.fixture
async def lambda_api():
    fake = FakeLambdaApi()
    server = TestServer(fake.app())
    await server.start_server()
    fake.address = f"{server.host}:{server.port}"
    try:
        yield fake
    finally:
        fake.release()
        await server.close()


@pytest.fixture
def apigw_event():
    def make(source_ip="203.0.113.7"):
        return {
            "resource": "/hello",
            "path": "/hello",
            "httpMethod": "GET",
            "requestContext": {"identity": {"sourceIp": source_ip}},
        }

    return make
