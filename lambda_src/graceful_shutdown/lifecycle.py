import asyncio
import enum
import logging
from typing import Optional

from graceful_shutdown import config
from graceful_shutdown.extension import ExtensionClient
from graceful_shutdown.runtime import RuntimeDriver
from graceful_shutdown.shutdown import ShutdownListener

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    INIT = "init"
    INVOKING = "invoking"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"


class Lifecycle:
    """Registers the extension, then runs the runtime loop, the extension loop
    and the shutdown listener side by side until one of them ends the process.

    Returns 0 after a signal-driven shutdown. An exception from the runtime or
    extension loop cancels the rest and propagates.
    """

    def __init__(
        self,
        driver: RuntimeDriver,
        extension: ExtensionClient,
        listener: Optional[ShutdownListener] = None,
        grace_seconds: Optional[float] = None,
    ):
        self.driver = driver
        self.extension = extension
        self.listener = listener or ShutdownListener()
        self.grace_seconds = config.SHUTDOWN_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self.phase = Phase.INIT
        self.stopping = asyncio.Event()
        self.started = asyncio.Event()

    async def run(self) -> int:
        try:
            await self.extension.register()
            self.listener.install()
            try:
                return await self._serve()
            finally:
                self.listener.uninstall()
        finally:
            self.phase = Phase.EXITED
            await self.driver.client.close()
            await self.extension.close()

    async def _serve(self) -> int:
        self.phase = Phase.INVOKING
        runtime_task = asyncio.create_task(self.driver.run(self.stopping), name="runtime")
        extension_task = asyncio.create_task(self.extension.run(self.stopping), name="extension")
        listener_task = asyncio.create_task(self.listener.run(self._drain), name="shutdown-listener")
        self.started.set()

        pending = {runtime_task, extension_task, listener_task}
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if listener_task in done:
                    listener_task.result()
                    return 0
                for task in done:
                    # raises for the failed loop; finished loops just drop out
                    task.result()
                if pending == {listener_task}:
                    return 0
            return 0
        finally:
            for task in (runtime_task, extension_task, listener_task):
                task.cancel()
            await asyncio.gather(runtime_task, extension_task, listener_task, return_exceptions=True)

    async def _drain(self):
        self.phase = Phase.SHUTTING_DOWN
        self.stopping.set()
        if self.driver.idle.is_set() or self.grace_seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.driver.idle.wait(), self.grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"[runtime] in-flight invocation still running after {self.grace_seconds}s, abandoning it"
            )
