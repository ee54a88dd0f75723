"""niri IPC client.

Implements the two collaborator contracts the transition engine consumes:

- WindowRegistry: live window ids, focused window, active workspace. Backed by
  ``niri msg --json ...`` subprocesses.
- ActionExecutor: ``MoveWindowToWorkspace`` actions sent over $NIRI_SOCKET.

It also exposes the niri event stream as an async iterator of
WorkspaceActivated events for the synchronizer.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Set, Union

from pydantic import ValidationError

from .config import DaemonConfig
from .errors import (
    ActiveWindowUnavailable,
    EventStreamClosed,
    RegistryError,
    RemoteActionFailure,
)
from .models import WorkspaceActivated, WorkspaceRef

logger = logging.getLogger(__name__)

# niri event lines carry full window/workspace lists; the asyncio default of 64 KiB is too small
STREAM_LIMIT = 16 * 1024 * 1024


class WindowRegistry(Protocol):
    """Authoritative window/focus/workspace state."""

    async def query_all_window_ids(self) -> Set[int]: ...

    async def query_focused_window_id(self) -> int: ...

    async def query_active_workspace_id(self) -> int: ...


class ActionExecutor(Protocol):
    """Performs window relocations."""

    async def move_window(self, window_id: int, destination: WorkspaceRef) -> None: ...


class EventSource(Protocol):
    """Infinite, non-restartable feed of workspace activations."""

    def event_stream(self) -> AsyncIterator[WorkspaceActivated]: ...


def _is_uint(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def parse_window_ids(payload: Any) -> Set[int]:
    """Extract window ids from ``niri msg --json windows`` output."""
    if not isinstance(payload, list):
        raise RegistryError("windows", f"expected a JSON array, got {type(payload).__name__}")
    return {
        item["id"]
        for item in payload
        if isinstance(item, dict) and _is_uint(item.get("id"))
    }


def parse_focused_window_id(payload: Any) -> int:
    """Extract the window id from ``niri msg --json focused-window`` output.

    niri prints ``null`` when no window has focus.
    """
    if payload is None:
        raise ActiveWindowUnavailable("No focused window")
    if isinstance(payload, dict) and _is_uint(payload.get("id")):
        return payload["id"]
    raise ActiveWindowUnavailable("Focused window id not found")


def parse_active_workspace_id(payload: Any) -> int:
    """Pick the active workspace from ``niri msg --json workspaces`` output.

    Prefers the focused workspace; falls back to the first active one, since
    every output has an active workspace but only one has focus.
    """
    if not isinstance(payload, list):
        raise RegistryError("workspaces", f"expected a JSON array, got {type(payload).__name__}")

    workspaces = [ws for ws in payload if isinstance(ws, dict) and _is_uint(ws.get("id"))]
    for key in ("is_focused", "is_active"):
        for workspace in workspaces:
            if workspace.get(key) is True:
                return workspace["id"]

    raise ActiveWindowUnavailable("Failed to get active workspace ID")


def parse_event_line(line: Union[str, bytes]) -> Optional[WorkspaceActivated]:
    """Decode one event-stream line.

    Returns:
        WorkspaceActivated for workspace activation events, None for anything
        else (other event types, the initial Ok reply, malformed lines)
    """
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug(f"Ignoring undecodable event line: {line!r}")
        return None

    if not isinstance(event, dict) or "WorkspaceActivated" not in event:
        return None

    try:
        return WorkspaceActivated.model_validate(event["WorkspaceActivated"])
    except ValidationError as e:
        logger.debug(f"Ignoring malformed WorkspaceActivated event: {e}")
        return None


def build_move_action(window_id: int, destination: WorkspaceRef) -> Dict[str, Any]:
    """niri request moving a window without following it with focus."""
    return {
        "Action": {
            "MoveWindowToWorkspace": {
                "window_id": window_id,
                "focus": False,
                "reference": destination.to_niri(),
            }
        }
    }


def action_reply_error(reply: str) -> Optional[str]:
    """Return the error carried by a niri action reply, or None on success."""
    if not reply.strip():
        return "empty reply from niri"
    try:
        data = json.loads(reply)
    except json.JSONDecodeError:
        return f"undecodable reply from niri: {reply.strip()}"
    if isinstance(data, dict) and "Err" in data:
        return str(data["Err"])
    return None


class NiriClient:
    """Registry, executor and event source bound to one niri instance."""

    def __init__(
        self,
        socket_path: Optional[Path],
        niri_command: str = "niri",
        timeout: float = 5.0,
    ) -> None:
        """Initialize niri client.

        Args:
            socket_path: niri IPC socket ($NIRI_SOCKET)
            niri_command: niri binary used for ``niri msg`` queries
            timeout: Seconds allowed for each query or action
        """
        self.socket_path = socket_path
        self.niri_command = niri_command
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: DaemonConfig) -> "NiriClient":
        return cls(
            socket_path=config.niri_socket,
            niri_command=config.niri_command,
            timeout=config.ipc_timeout,
        )

    # Registry queries

    async def _msg(self, operation: str) -> Any:
        """Run ``niri msg --json <operation>`` and decode its output."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.niri_command, "msg", "--json", operation,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RegistryError(operation, f"cannot run {self.niri_command}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RegistryError(operation, f"timed out after {self.timeout}s")

        if proc.returncode != 0:
            reason = stderr.decode("utf-8", errors="replace").strip() or f"exit code {proc.returncode}"
            raise RegistryError(operation, reason)

        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise RegistryError(operation, f"invalid JSON output: {e}")

    async def query_all_window_ids(self) -> Set[int]:
        return parse_window_ids(await self._msg("windows"))

    async def query_focused_window_id(self) -> int:
        return parse_focused_window_id(await self._msg("focused-window"))

    async def query_active_workspace_id(self) -> int:
        return parse_active_workspace_id(await self._msg("workspaces"))

    # Actions

    def _require_socket(self) -> Path:
        if self.socket_path is None:
            raise ConnectionError("NIRI_SOCKET is not set")
        return self.socket_path

    async def _request(self, payload: Dict[str, Any]) -> str:
        """Send one JSON request on a fresh connection and read the reply line."""
        reader, writer = await asyncio.open_unix_connection(str(self._require_socket()))
        try:
            writer.write((json.dumps(payload) + "\n").encode())
            await writer.drain()
            reply = await reader.readline()
        finally:
            writer.close()
            await writer.wait_closed()
        return reply.decode("utf-8", errors="replace")

    async def move_window(self, window_id: int, destination: WorkspaceRef) -> None:
        """Move a window to a workspace without changing focus.

        Raises:
            RemoteActionFailure: On socket errors, timeouts or an Err reply
        """
        try:
            reply = await asyncio.wait_for(
                self._request(build_move_action(window_id, destination)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise RemoteActionFailure(window_id, str(destination), f"timed out after {self.timeout}s")
        except OSError as e:
            raise RemoteActionFailure(window_id, str(destination), str(e))

        error = action_reply_error(reply)
        if error:
            raise RemoteActionFailure(window_id, str(destination), error)

        logger.debug(f"Moved window {window_id} to workspace {destination}: {reply.strip()}")

    # Event stream

    async def event_stream(self) -> AsyncIterator[WorkspaceActivated]:
        """Subscribe to niri events and yield workspace activations.

        Raises:
            EventStreamClosed: When the connection cannot be opened or is lost
        """
        try:
            reader, writer = await asyncio.open_unix_connection(
                str(self._require_socket()), limit=STREAM_LIMIT
            )
        except OSError as e:
            raise EventStreamClosed(f"cannot connect to niri: {e}")

        try:
            try:
                writer.write(b'"EventStream"\n')
                await writer.drain()
            except OSError as e:
                raise EventStreamClosed(f"subscription failed: {e}")
            logger.info(f"Subscribed to niri event stream on {self.socket_path}")

            while True:
                try:
                    line = await reader.readline()
                except (OSError, ValueError) as e:
                    raise EventStreamClosed(str(e))

                if not line:
                    raise EventStreamClosed("connection closed by niri")

                event = parse_event_line(line)
                if event is not None:
                    yield event
        finally:
            writer.close()
