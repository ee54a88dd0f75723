"""
IPC server for the nsticky daemon.

Unix socket server speaking the line protocol: each connection carries one
request line and receives one response line before it is closed.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .engine import TransitionEngine
from .errors import ProtocolError, StickyError
from .models import Command, Request, StageToggle, Target
from .protocol import Response, parse_request

logger = logging.getLogger(__name__)

# Longest accepted request line; requests are a command and at most one id
MAX_REQUEST_BYTES = 64 * 1024


class IPCServer:
    """Line-protocol server dispatching requests to the transition engine."""

    def __init__(self, engine: TransitionEngine, socket_path: Path):
        """
        Initialize IPC server.

        Args:
            engine: TransitionEngine shared with the synchronizer
            socket_path: Unix socket path to listen on
        """
        self.engine = engine
        self.socket_path = socket_path
        self.server: Optional[asyncio.AbstractServer] = None

    async def start(self):
        """Start IPC server."""
        # Ensure socket directory exists
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        # Remove stale socket from a previous run
        if self.socket_path.exists() or self.socket_path.is_symlink():
            self.socket_path.unlink()

        self.server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path),
            limit=MAX_REQUEST_BYTES
        )

        logger.info(f"IPC server listening on {self.socket_path}")

    async def stop(self):
        """Stop IPC server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        if self.socket_path.exists():
            self.socket_path.unlink()

        logger.info("IPC server stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        Handle one client connection: read a request, write a response, close.

        Args:
            reader: Stream reader
            writer: Stream writer
        """
        try:
            try:
                data = await reader.readline()
            except ValueError:
                # readline turns a line longer than the stream limit into ValueError
                logger.warning(f"Rejected request longer than {MAX_REQUEST_BYTES} bytes")
                response = Response.error("Request too long")
            else:
                line = data.decode("utf-8", errors="replace").strip()
                if not line:
                    logger.debug("Client closed connection without a request")
                    return
                response = await self.handle_line(line)

            writer.write(response.render().encode())
            await writer.drain()

        except ConnectionError as e:
            logger.warning(f"Client connection lost: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError as e:
                logger.debug(f"Error closing client connection: {e}")

    async def handle_line(self, line: str) -> Response:
        """Parse and execute one request line."""
        logger.debug(f"Received request: {line}")

        try:
            request = parse_request(line)
        except ProtocolError as e:
            logger.warning(f"Rejected request {line!r}: {e.message}")
            return Response.error(e.message)

        return await self.dispatch(request)

    async def dispatch(self, request: Request) -> Response:
        """Execute a parsed request, converting failures into error responses."""
        try:
            return await self._route(request)

        except StickyError as e:
            logger.error(f"Request '{request.to_line()}' failed [{e.code.name}]: {e.to_dict()}")
            return Response.error(e.message)

        except Exception as e:
            logger.error(f"Unexpected error handling '{request.to_line()}': {e}", exc_info=True)
            return Response.error("Internal error")

    async def _route(self, request: Request) -> Response:
        command = request.command

        if command is Command.ADD:
            added = await self.engine.add(request.window_id)
            return Response.success("Added" if added else "Already in sticky list")

        elif command is Command.REMOVE:
            removed = await self.engine.remove(request.window_id)
            return Response.success("Removed" if removed else "Not in sticky list")

        elif command is Command.LIST:
            return Response.data(await self.engine.list_sticky())

        elif command is Command.TOGGLE_ACTIVE:
            added = await self.engine.toggle_active()
            if added:
                return Response.success("Added active window to sticky")
            return Response.success("Removed active window from sticky")

        elif command is Command.STAGE:
            return await self._route_stage(request)

        elif command is Command.UNSTAGE:
            return await self._route_unstage(request)

        raise ProtocolError("Unknown command", line=request.to_line())

    async def _route_stage(self, request: Request) -> Response:
        target = request.target

        if target is Target.ALL:
            count = await self.engine.stage_all()
            return Response.success(f"Staged {count} windows")

        elif target is Target.LIST:
            return Response.data(await self.engine.list_staged())

        elif target is Target.ACTIVE:
            outcome = await self.engine.toggle_stage_active()
            if outcome is StageToggle.UNSTAGED:
                return Response.success("Unstaged active window")
            return Response.success("Staged active window")

        await self.engine.stage(request.window_id)
        return Response.success("Staged window")

    async def _route_unstage(self, request: Request) -> Response:
        # Unstaged windows land on the workspace the user is looking at
        workspace_id = await self.engine.active_workspace()
        target = request.target

        if target is Target.ALL:
            count = await self.engine.unstage_all(workspace_id)
            return Response.success(f"Unstaged {count} windows")

        elif target is Target.ACTIVE:
            await self.engine.unstage_active(workspace_id)
            return Response.success("Unstaged active window")

        await self.engine.unstage(request.window_id, workspace_id)
        return Response.success("Unstaged window")
