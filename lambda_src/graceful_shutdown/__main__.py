import asyncio
import os

from graceful_shutdown import logs
from graceful_shutdown.errors import ExtensionRegistrationError, SignalInstallError
from graceful_shutdown.extension import ExtensionClient
from graceful_shutdown.handler import handler
from graceful_shutdown.lifecycle import Lifecycle
from graceful_shutdown.runtime import RuntimeClient, RuntimeDriver


async def report_init_error(extension, exc):
    if extension.extension_id is not None:
        async with extension:
            await extension.report_init_error(exc)
    else:
        async with RuntimeClient() as client:
            await client.post_init_error(exc)


async def serve(logger) -> int:
    lifecycle = Lifecycle(RuntimeDriver(RuntimeClient(), handler), ExtensionClient())
    try:
        return await lifecycle.run()
    except (ExtensionRegistrationError, SignalInstallError) as e:
        logger.exception(f"startup failed: {e}")
        try:
            await report_init_error(lifecycle.extension, e)
        except Exception:
            logger.exception("could not report init error")
        return 1
    except Exception:
        logger.exception("runtime stopped unexpectedly")
        return 1


def main():
    logger = logs.setup_logger()
    code = asyncio.run(serve(logger))
    logs.flush()
    # An abandoned handler thread must not keep the process alive.
    os._exit(code)


if __name__ == "__main__":
    main()
