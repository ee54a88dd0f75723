"""State store for the nsticky daemon.

Holds the sticky and staged window sets behind a single asyncio lock. A window
is never a member of both sets; every mutation goes through a Transaction,
which keeps that invariant by construction and checks it on exit.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Set

from .errors import InvalidState
from .models import Membership

logger = logging.getLogger(__name__)


class Transaction:
    """Mutable view of both sets, valid only while the store lock is held."""

    def __init__(self, sets: Dict[Membership, Set[int]]) -> None:
        self._sets = sets

    def contains(self, window_id: int, membership: Membership) -> bool:
        return window_id in self._sets[membership]

    def take(self, window_id: int, membership: Membership) -> bool:
        """Remove window_id from a set. Returns whether it was present."""
        members = self._sets[membership]
        if window_id not in members:
            return False
        members.remove(window_id)
        return True

    def put(self, window_id: int, membership: Membership) -> bool:
        """Move window_id into a set, leaving the other set.

        Returns:
            True if window_id was not already in the target set
        """
        self._sets[membership.other].discard(window_id)
        members = self._sets[membership]
        if window_id in members:
            return False
        members.add(window_id)
        return True

    def snapshot(self, membership: Membership) -> Set[int]:
        return set(self._sets[membership])

    def retain(self, membership: Membership, keep: Iterable[int]) -> Set[int]:
        """Drop every member not in keep. Returns the dropped ids."""
        members = self._sets[membership]
        dropped = members.difference(keep)
        members.difference_update(dropped)
        return dropped


class StateStore:
    """Owns the sticky and staged sets with async-safe operations."""

    def __init__(self) -> None:
        """Initialize state store with empty sets."""
        self._sets: Dict[Membership, Set[int]] = {
            Membership.STICKY: set(),
            Membership.STAGED: set(),
        }
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Hold the store lock for a multi-step transition."""
        async with self._lock:
            yield Transaction(self._sets)
            self._check_disjoint()

    def _check_disjoint(self) -> None:
        overlap = self._sets[Membership.STICKY] & self._sets[Membership.STAGED]
        if overlap:
            # Transaction.put makes this unreachable; a hit means a bug in a caller
            raise AssertionError(f"Windows in both sticky and staged sets: {sorted(overlap)}")

    async def snapshot(self, membership: Membership) -> Set[int]:
        async with self.transaction() as txn:
            return txn.snapshot(membership)

    async def snapshot_sticky(self) -> Set[int]:
        return await self.snapshot(Membership.STICKY)

    async def snapshot_staged(self) -> Set[int]:
        return await self.snapshot(Membership.STAGED)

    async def is_sticky(self, window_id: int) -> bool:
        async with self.transaction() as txn:
            return txn.contains(window_id, Membership.STICKY)

    async def is_staged(self, window_id: int) -> bool:
        async with self.transaction() as txn:
            return txn.contains(window_id, Membership.STAGED)

    async def add_sticky(self, window_id: int) -> bool:
        """Insert into the sticky set.

        Returns:
            True if the window was newly inserted

        Raises:
            InvalidState: If the window is staged (it returns via unstage only)
        """
        async with self.transaction() as txn:
            if txn.contains(window_id, Membership.STAGED):
                raise InvalidState(window_id, "Window is staged, unstage it first")
            added = txn.put(window_id, Membership.STICKY)
        if added:
            logger.info(f"Window {window_id} marked sticky")
        return added

    async def remove_sticky(self, window_id: int) -> bool:
        """Erase from the sticky set. Returns whether it was present."""
        async with self.transaction() as txn:
            removed = txn.take(window_id, Membership.STICKY)
        if removed:
            logger.info(f"Window {window_id} no longer sticky")
        return removed

    async def toggle_sticky(self, window_id: int) -> bool:
        """Flip sticky membership. Returns True if the window is now sticky."""
        async with self.transaction() as txn:
            if txn.contains(window_id, Membership.STAGED):
                raise InvalidState(window_id, "Window is staged, unstage it first")
            if txn.take(window_id, Membership.STICKY):
                added = False
            else:
                added = txn.put(window_id, Membership.STICKY)
        logger.info(f"Window {window_id} {'marked' if added else 'no longer'} sticky")
        return added

    async def prune_sticky(self, live_ids: Set[int]) -> Set[int]:
        """Drop sticky ids that niri no longer reports. Returns the dropped ids."""
        async with self.transaction() as txn:
            dropped = txn.retain(Membership.STICKY, live_ids)
        if dropped:
            logger.info(f"Pruned closed windows from sticky set: {sorted(dropped)}")
        return dropped

    async def commit_transfer(
        self,
        window_ids: List[int],
        source: Membership,
    ) -> List[int]:
        """Move a batch of ids from source to the other set as one atomic step.

        Ids no longer in source are skipped.

        Returns:
            The ids actually transferred
        """
        committed: List[int] = []
        async with self.transaction() as txn:
            for window_id in window_ids:
                if txn.take(window_id, source):
                    txn.put(window_id, source.other)
                    committed.append(window_id)

        skipped = set(window_ids).difference(committed)
        if skipped:
            logger.info(f"Skipped windows that left the {source.value} set during transfer: {sorted(skipped)}")
        return committed
