"""Internal extension that exists only so the runtime process receives SIGTERM.

Lambda delivers SIGTERM to the runtime before reclaiming the execution
environment only when at least one extension is registered. This one
subscribes to no events.
"""
import asyncio
import json
import logging
from typing import Optional

import aiohttp

from graceful_shutdown import config
from graceful_shutdown.errors import ExtensionRegistrationError, RuntimeApiError

logger = logging.getLogger(__name__)

API_VERSION = "2020-01-01"

LONG_POLL = aiohttp.ClientTimeout(total=None)
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


class ExtensionClient:
    def __init__(self, name: Optional[str] = None, events=(), runtime_api: Optional[str] = None):
        self.name = name or config.EXTENSION_NAME
        self.events = list(events)
        self.base_url = f"http://{runtime_api or config.RUNTIME_API}/{API_VERSION}/extension"
        self.extension_id: Optional[str] = None
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

    async def register(self) -> str:
        # Must finish before the runtime polls for its first invocation,
        # which ends the Init phase.
        if self.extension_id is not None:
            raise ExtensionRegistrationError(f"extension {self.name!r} is already registered")

        session = await self._get_session()
        try:
            async with session.post(
                self.base_url + "/register",
                json={"events": self.events},
                headers={"Lambda-Extension-Name": self.name},
                timeout=REQUEST_TIMEOUT,
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise ExtensionRegistrationError(
                        f"could not register extension {self.name!r}: HTTP {resp.status} {body}"
                    )
                extension_id = resp.headers.get("Lambda-Extension-Identifier")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExtensionRegistrationError(f"could not register extension {self.name!r}: {e}") from e

        if not extension_id:
            raise ExtensionRegistrationError(f"no extension identifier returned for {self.name!r}")

        self.extension_id = extension_id
        logger.info(f"[extension] registered {self.name} events={self.events}")
        return extension_id

    def _id_header(self):
        if self.extension_id is None:
            raise ExtensionRegistrationError(f"extension {self.name!r} is not registered")
        return {"Lambda-Extension-Identifier": self.extension_id}

    async def next_event(self) -> dict:
        headers = self._id_header()
        session = await self._get_session()
        path = "/event/next"
        async with session.get(self.base_url + path, headers=headers, timeout=LONG_POLL) as resp:
            body = await resp.text()
            if resp.status != 200:
                raise RuntimeApiError(path, resp.status, body)
        return json.loads(body) if body else {}

    async def run(self, stopping: asyncio.Event):
        # The Init phase only ends once every extension has asked for its next event.
        # With no subscriptions that first call parks until the process goes away.
        while not stopping.is_set():
            event = await self.next_event()
            event_type = event.get("eventType")
            if event_type == "SHUTDOWN":
                logger.info(f"[extension] SHUTDOWN received ({event.get('shutdownReason')})")
                return
            logger.debug(f"[extension] ignoring {event_type} event")

    async def report_init_error(self, exc: BaseException):
        headers = {
            **self._id_header(),
            "Lambda-Extension-Function-Error-Type": f"Extension.{type(exc).__name__}",
        }
        session = await self._get_session()
        path = "/init/error"
        async with session.post(
            self.base_url + path,
            json={"errorMessage": str(exc), "errorType": type(exc).__name__},
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        ) as resp:
            if resp.status >= 300:
                raise RuntimeApiError(path, resp.status, await resp.text())
