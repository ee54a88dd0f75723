"""Transition engine for sticky and staged windows.

Every user-facing operation follows the same shape: validate against the live
niri window list, mutate local state, perform at most one remote action per
window, then commit or compensate. Single-window stage/unstage are
all-or-nothing; the bulk variants are best-effort and report how many windows
actually moved.
"""

import logging
from typing import List, Optional

from .errors import (
    ActiveWindowUnavailable,
    InvalidState,
    NotFound,
    RegistryError,
    RemoteActionFailure,
)
from .models import Membership, StageToggle, WorkspaceRef
from .niri import ActionExecutor, WindowRegistry
from .state import StateStore

logger = logging.getLogger(__name__)

NOT_FOUND = "Window not found in Niri"
ACTIVE_NOT_FOUND = "Active window not found in Niri"
NOT_STICKY = "Window is not sticky, cannot stage"
NOT_STAGED = "Window is not staged"
ACTIVE_NOT_STAGED = "Active window is not staged"


class TransitionEngine:
    """Validated, rollback-safe operations over the sticky/staged sets."""

    def __init__(
        self,
        store: StateStore,
        registry: WindowRegistry,
        executor: ActionExecutor,
        stage_workspace: str = "stage",
    ) -> None:
        """Initialize transition engine.

        Args:
            store: Shared state store owning both window sets
            registry: Source of truth for existing windows and focus
            executor: Performs window moves
            stage_workspace: Name of the workspace staged windows are parked on
        """
        self.store = store
        self.registry = registry
        self.executor = executor
        self.stage_ref = WorkspaceRef.by_name(stage_workspace)

    # Lookups

    async def _require_window(self, window_id: int, message: str = NOT_FOUND) -> None:
        live_ids = await self.registry.query_all_window_ids()
        if window_id not in live_ids:
            raise NotFound(window_id, message)

    async def focused_window(self) -> int:
        """Resolve the focused window id.

        Raises:
            ActiveWindowUnavailable: If niri has no focused window or the query fails
        """
        try:
            return await self.registry.query_focused_window_id()
        except RegistryError as e:
            raise ActiveWindowUnavailable("Failed to get active window") from e

    async def active_workspace(self) -> int:
        """Resolve the active workspace id.

        Raises:
            ActiveWindowUnavailable: If the workspace cannot be determined
        """
        try:
            return await self.registry.query_active_workspace_id()
        except (RegistryError, ActiveWindowUnavailable) as e:
            raise ActiveWindowUnavailable("Failed to get active workspace ID") from e

    # Sticky membership

    async def add(self, window_id: int) -> bool:
        """Mark a window sticky. Returns True if it was not sticky before."""
        await self._require_window(window_id)
        return await self.store.add_sticky(window_id)

    async def remove(self, window_id: int) -> bool:
        """Unmark a sticky window. Returns True if it was sticky."""
        await self._require_window(window_id)
        return await self.store.remove_sticky(window_id)

    async def toggle_active(self) -> bool:
        """Flip sticky membership of the focused window.

        Returns:
            True if the window was added, False if it was removed
        """
        window_id = await self.focused_window()
        await self._require_window(window_id, ACTIVE_NOT_FOUND)
        return await self.store.toggle_sticky(window_id)

    async def list_sticky(self) -> List[int]:
        """Sticky windows that still exist. Does not prune the stored set."""
        sticky_ids = await self.store.snapshot_sticky()
        live_ids = await self.registry.query_all_window_ids()
        return sorted(sticky_ids & live_ids)

    async def list_staged(self) -> List[int]:
        return sorted(await self.store.snapshot_staged())

    # Single-window transitions

    async def _transfer(
        self,
        window_id: int,
        source: Membership,
        destination: WorkspaceRef,
        not_member_message: str,
    ) -> None:
        """Move a window out of source, relocate it, and commit to the other set.

        The store lock is held for the whole transition, so no reader ever
        observes the window in neither set. If the move fails the window is
        put back into source before the error propagates.
        """
        async with self.store.transaction() as txn:
            if not txn.take(window_id, source):
                raise InvalidState(window_id, not_member_message)

            try:
                await self.executor.move_window(window_id, destination)
            except BaseException as e:
                txn.put(window_id, source)
                logger.warning(
                    f"Move of window {window_id} to workspace {destination} failed, "
                    f"restored it to {source.value} set: {e}"
                )
                raise

            txn.put(window_id, source.other)

    async def _stage(self, window_id: int, active: bool) -> None:
        await self._require_window(window_id, ACTIVE_NOT_FOUND if active else NOT_FOUND)
        await self._transfer(window_id, Membership.STICKY, self.stage_ref, NOT_STICKY)
        logger.info(f"Staged window {window_id}")

    async def _unstage(self, window_id: int, workspace_id: int, active: bool) -> None:
        await self._require_window(window_id, ACTIVE_NOT_FOUND if active else NOT_FOUND)
        await self._transfer(
            window_id,
            Membership.STAGED,
            WorkspaceRef.by_id(workspace_id),
            ACTIVE_NOT_STAGED if active else NOT_STAGED,
        )
        logger.info(f"Unstaged window {window_id} to workspace {workspace_id}")

    async def stage(self, window_id: int) -> None:
        """Park a sticky window on the stage workspace.

        Raises:
            NotFound: Window does not exist
            InvalidState: Window is not sticky
            RemoteActionFailure: The move failed; the window stays sticky
        """
        await self._stage(window_id, active=False)

    async def unstage(self, window_id: int, workspace_id: int) -> None:
        """Bring a staged window to workspace_id and make it sticky again.

        Raises:
            NotFound: Window does not exist
            InvalidState: Window is not staged
            RemoteActionFailure: The move failed; the window stays staged
        """
        await self._unstage(window_id, workspace_id, active=False)

    async def stage_active(self) -> int:
        """Stage the focused window. Returns its id."""
        window_id = await self.focused_window()
        await self._stage(window_id, active=True)
        return window_id

    async def unstage_active(self, workspace_id: int) -> int:
        """Unstage the focused window to workspace_id. Returns its id."""
        window_id = await self.focused_window()
        await self._unstage(window_id, workspace_id, active=True)
        return window_id

    async def toggle_stage_active(self, workspace_id: Optional[int] = None) -> StageToggle:
        """Stage the focused window, or unstage it if it is already staged.

        The staged check is read once; if a concurrent request changes the
        window's membership before the delegated transition runs, that
        transition fails its own precondition instead of flipping direction.

        Args:
            workspace_id: Unstage destination (defaults to the active workspace)
        """
        window_id = await self.focused_window()

        if await self.store.is_staged(window_id):
            if workspace_id is None:
                workspace_id = await self.active_workspace()
            await self._unstage(window_id, workspace_id, active=True)
            return StageToggle.UNSTAGED

        await self._stage(window_id, active=True)
        return StageToggle.STAGED

    # Bulk transitions

    async def _transfer_all(self, source: Membership, destination: WorkspaceRef) -> int:
        """Best-effort move of every existing member of source.

        Windows whose move fails are left in source. Successful ones are
        committed to the other set in one step after all moves ran; a window
        that left source while the moves ran (e.g. a concurrent remove) is not
        committed and not counted.
        """
        candidates = await self.store.snapshot(source)
        if not candidates:
            return 0

        live_ids = await self.registry.query_all_window_ids()
        existing = sorted(candidates & live_ids)

        moved: List[int] = []
        for window_id in existing:
            try:
                await self.executor.move_window(window_id, destination)
            except RemoteActionFailure as e:
                logger.warning(f"Failed to move window {window_id} to workspace {destination}: {e.message}")
                continue
            moved.append(window_id)

        committed = await self.store.commit_transfer(moved, source)
        logger.info(
            f"Moved {len(committed)}/{len(existing)} {source.value} windows "
            f"to {source.other.value} (workspace {destination})"
        )
        return len(committed)

    async def stage_all(self) -> int:
        """Stage every existing sticky window. Returns the number staged."""
        return await self._transfer_all(Membership.STICKY, self.stage_ref)

    async def unstage_all(self, workspace_id: int) -> int:
        """Unstage every existing staged window to workspace_id. Returns the number unstaged."""
        return await self._transfer_all(Membership.STAGED, WorkspaceRef.by_id(workspace_id))

    # Workspace following

    async def sync_to_workspace(self, workspace_id: int) -> int:
        """Prune closed windows from the sticky set, then move every sticky
        window to workspace_id.

        Per-window move failures are logged and skipped; the window stays
        sticky and is retried on the next workspace change.

        Returns:
            Number of windows moved successfully

        Raises:
            RegistryError: Window query failed; nothing was pruned or moved
        """
        live_ids = await self.registry.query_all_window_ids()

        await self.store.prune_sticky(live_ids)
        sticky_ids = await self.store.snapshot_sticky()
        logger.debug(f"Sticky windows after prune: {sorted(sticky_ids)}")

        destination = WorkspaceRef.by_id(workspace_id)
        moved = 0
        for window_id in sorted(sticky_ids):
            try:
                await self.executor.move_window(window_id, destination)
                moved += 1
            except RemoteActionFailure as e:
                logger.warning(f"Failed to move window {window_id}: {e.message}")

        return moved
