"""Main entry point - connects to the network, then serves the API."""

import asyncio
import logging
import signal
import sys

import uvicorn

from treasury_relay.api.app import create_app
from treasury_relay.config import get_settings
from treasury_relay.service import get_service
from treasury_relay.signing.base import SigningError
from treasury_relay.transfer.base import ConnectivityError

logger = logging.getLogger(__name__)


class Application:
    """Runs the treasury relay API."""

    def __init__(self):
        self.settings = get_settings()
        self.server = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> int:
        """Start all services. Returns the process exit code."""
        log_level = logging.DEBUG if self.settings.debug else logging.INFO
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting treasury relay...")
        logger.info(f"Environment: {self.settings.environment}")

        # A signer that cannot reach any endpoint must not serve stale state.
        try:
            service = get_service()
            await service.start()
        except SigningError as e:
            logger.critical(f"FATAL: {e}. Cannot run.")
            return 1
        except ConnectivityError as e:
            logger.critical(f"FATAL: All RPCs failed after multiple attempts. {e}")
            return 1

        api_task = asyncio.create_task(self._run_api())
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())

        await asyncio.wait({api_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)

        if self.server is not None:
            self.server.should_exit = True
        shutdown_task.cancel()
        await asyncio.gather(api_task, shutdown_task, return_exceptions=True)

        await service.close()
        logger.info("Cleanup complete")
        return 0

    async def _run_api(self):
        """Run the FastAPI server."""
        try:
            config = uvicorn.Config(
                create_app(),
                host=self.settings.api_host,
                port=self.settings.api_port,
                log_level="debug" if self.settings.debug else "info",
            )
            self.server = uvicorn.Server(config)
            logger.info(f"[SERVER] API listening on {self.settings.api_host}:{self.settings.api_port}")
            await self.server.serve()
        except asyncio.CancelledError:
            logger.info("API server cancelled")
        except Exception as e:
            logger.error(f"API error: {e}")
            raise

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    app = Application()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    exit_code = 0
    try:
        exit_code = loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        loop.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
