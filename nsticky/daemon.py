"""Main daemon entry point with systemd integration.

Runs the CLI request server and the workspace synchronizer side by side on one
event loop, sharing a single state store. When the niri event stream closes
the daemon exits non-zero so systemd can restart it with a fresh subscription.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

try:
    from systemd import journal, daemon as sd_daemon
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from .config import DaemonConfig, load_config
from .engine import TransitionEngine
from .errors import EventStreamClosed, StickyError
from .ipc_server import IPCServer
from .niri import NiriClient
from .state import StateStore
from .synchronizer import EventSynchronizer

logger = logging.getLogger(__name__)


def notify_systemd(state: str) -> None:
    """Send a state string (READY=1, STOPPING=1) to systemd if available."""
    if SYSTEMD_AVAILABLE:
        sd_daemon.notify(state)
        logger.debug(f"Sent {state} to systemd")


class StickyDaemon:
    """Main daemon class."""

    def __init__(self, config: DaemonConfig, niri: Optional[NiriClient] = None) -> None:
        """Initialize daemon components.

        Args:
            config: Loaded daemon configuration
            niri: niri client (built from config when omitted)
        """
        self.config = config
        self.niri = niri or NiriClient.from_config(config)
        self.store = StateStore()
        self.engine = TransitionEngine(
            self.store,
            registry=self.niri,
            executor=self.niri,
            stage_workspace=config.stage_workspace,
        )
        self.ipc_server = IPCServer(self.engine, config.cli_socket_path)
        self.synchronizer = EventSynchronizer(self.engine, events=self.niri)
        self.shutdown_event = asyncio.Event()
        self._sync_task: Optional[asyncio.Task] = None

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def shutdown_handler(signum: int) -> None:
            logger.info(f"Received signal {signum}, initiating shutdown...")
            self.shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_handler, sig)

    async def run(self) -> int:
        """Serve requests and follow workspace changes until shutdown.

        Returns:
            Exit code (0 = shutdown requested, 1 = event stream lost)
        """
        await self.ipc_server.start()
        self._sync_task = asyncio.create_task(self.synchronizer.run(), name="workspace-sync")
        shutdown_task = asyncio.create_task(self.shutdown_event.wait(), name="shutdown-wait")

        notify_systemd("READY=1")
        logger.info("nsticky daemon started")

        exit_code = 0
        try:
            done, _ = await asyncio.wait(
                [self._sync_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED
            )

            if self._sync_task in done:
                exit_code = 1
                error = self._sync_task.exception()
                if isinstance(error, EventStreamClosed):
                    logger.error(f"{error.message}; exiting for restart")
                elif error is not None:
                    logger.error("Workspace synchronizer crashed", exc_info=error)
                else:
                    logger.error("Workspace synchronizer stopped unexpectedly")
        finally:
            shutdown_task.cancel()
            await self.shutdown()

        return exit_code

    async def shutdown(self) -> None:
        """Stop the server and the synchronizer, each bounded by a timeout."""
        logger.info("Shutting down daemon...")
        notify_systemd("STOPPING=1")

        try:
            await asyncio.wait_for(self.ipc_server.stop(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("IPC server shutdown timed out after 5s (continuing)")
        except OSError as e:
            logger.error(f"Error stopping IPC server: {e}")

        if self._sync_task and not self._sync_task.done():
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass

        logger.info("Daemon shutdown complete")


def setup_logging(log_level: str = "INFO") -> None:
    """Setup logging to systemd journal or stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if SYSTEMD_AVAILABLE and os.environ.get("JOURNAL_STREAM"):
        handler = journal.JournalHandler(SYSLOG_IDENTIFIER="nsticky")
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
    root_logger.addHandler(handler)

    logger.debug(f"Logging configured: level={log_level}")


async def main_async(config: DaemonConfig) -> int:
    """Async main function.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    daemon = StickyDaemon(config)
    daemon.setup_signal_handlers()
    return await daemon.run()


def main() -> None:
    """Main entry point."""
    try:
        config = load_config()
        config.require_niri_socket()
    except StickyError as e:
        setup_logging()
        logger.error(e.message)
        sys.exit(1)

    setup_logging(config.log_level)
    logger.info(f"nsticky daemon starting (PID {os.getpid()})")

    try:
        sys.exit(asyncio.run(main_async(config)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
