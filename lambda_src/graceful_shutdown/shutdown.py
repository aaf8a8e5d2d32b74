import asyncio
import enum
import logging
import signal

from graceful_shutdown.errors import SignalInstallError

logger = logging.getLogger(__name__)

SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ListenerState(enum.Enum):
    WAITING = "waiting"
    DRAINING = "draining"
    EXITED = "exited"


class ShutdownListener:
    """Waits for the first SIGINT or SIGTERM and walks through the shutdown phases.

    Lambda sends at most one SIGTERM per environment, so the listener is
    single-shot: anything delivered after the first signal is logged and
    dropped.
    """

    def __init__(self, signals=SIGNALS):
        self.signals = tuple(signals)
        self.state = ListenerState.WAITING
        self.received = None
        self._loop = None
        self._signalled = None

    def install(self):
        self._loop = asyncio.get_running_loop()
        self._signalled = self._loop.create_future()
        installed = []
        try:
            for sig in self.signals:
                self._loop.add_signal_handler(sig, self.deliver, sig)
                installed.append(sig)
        except (ValueError, RuntimeError, NotImplementedError) as e:
            failed = sig
            for done in installed:
                self._loop.remove_signal_handler(done)
            raise SignalInstallError(f"could not install handler for {failed!r}: {e}") from e

    def uninstall(self):
        if self._loop is None:
            return
        for sig in self.signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def deliver(self, sig):
        if self._signalled is None:
            raise SignalInstallError("listener is not installed")
        if self._signalled.done():
            logger.warning(f"[runtime] ignoring {signal.Signals(sig).name}, shutdown already {self.state.value}")
            return
        self._signalled.set_result(signal.Signals(sig))

    async def run(self, drain=None) -> signal.Signals:
        if self._signalled is None:
            raise SignalInstallError("listener is not installed")

        sig = await self._signalled
        self.received = sig
        logger.info(f"[runtime] {sig.name} received")

        self.state = ListenerState.DRAINING
        logger.info("[runtime] Graceful shutdown in progress ...")
        if drain is not None:
            await drain()

        logger.info("[runtime] Graceful shutdown completed")
        self.state = ListenerState.EXITED
        return sig
