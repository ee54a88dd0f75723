"""Workspace-change synchronizer.

Follows the niri event stream and, on every workspace activation, asks the
transition engine to prune closed windows from the sticky set and move the
remaining sticky windows to the newly active workspace.
"""

import logging
from enum import Enum
from typing import Optional

from .engine import TransitionEngine
from .errors import RegistryError
from .models import WorkspaceActivated
from .niri import EventSource

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class EventSynchronizer:
    """Re-places sticky windows whenever the active workspace changes."""

    def __init__(self, engine: TransitionEngine, events: EventSource) -> None:
        self.engine = engine
        self.events = events
        self.state = SyncState.IDLE
        self.last_workspace_id: Optional[int] = None

    async def handle_workspace_activation(self, event: WorkspaceActivated) -> int:
        """Sync sticky windows to event.id.

        Returns:
            Number of windows moved successfully (0 if the window query failed)
        """
        self.state = SyncState.SYNCING
        try:
            moved = await self.engine.sync_to_workspace(event.id)
        except RegistryError as e:
            logger.error(f"Skipping workspace {event.id} sync, window query failed: {e.message}")
            return 0
        finally:
            self.state = SyncState.IDLE

        self.last_workspace_id = event.id
        return moved

    async def run(self) -> None:
        """Consume the event stream until it closes.

        Raises:
            EventStreamClosed: When the niri connection ends; not retried here
        """
        logger.info("Workspace synchronizer started")
        async for event in self.events.event_stream():
            logger.info(f"Workspace switched to: {event.id}")
            moved = await self.handle_workspace_activation(event)
            logger.debug(f"Moved {moved} sticky windows to workspace {event.id}")
