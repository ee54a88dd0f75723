"""
Unit tests for StateStore.

Tests cover sticky membership, transactions and the sticky/staged
disjointness invariant.
"""

import asyncio

import pytest

from conftest import seed, sets_of
from nsticky.errors import InvalidState
from nsticky.models import Membership
from nsticky.state import StateStore


class TestStickyMembership:
    """Test add/remove/toggle on the sticky set."""

    @pytest.mark.asyncio
    async def test_add_sticky_reports_new_insert(self, store):
        assert await store.add_sticky(5) is True
        assert await store.add_sticky(5) is False

        sticky, staged = sets_of(store)
        assert sticky == {5}
        assert staged == set()

    @pytest.mark.asyncio
    async def test_add_sticky_rejects_staged_window(self, store):
        seed(store, staged={5})

        with pytest.raises(InvalidState):
            await store.add_sticky(5)

        assert sets_of(store) == (set(), {5})

    @pytest.mark.asyncio
    async def test_remove_sticky(self, store):
        seed(store, sticky={5})

        assert await store.remove_sticky(5) is True
        assert await store.remove_sticky(5) is False
        assert sets_of(store) == (set(), set())

    @pytest.mark.asyncio
    async def test_toggle_sticky_round_trip(self, store):
        seed(store, sticky={1})

        assert await store.toggle_sticky(5) is True
        assert await store.toggle_sticky(5) is False
        assert sets_of(store) == ({1}, set())

    @pytest.mark.asyncio
    async def test_toggle_sticky_rejects_staged_window(self, store):
        seed(store, staged={5})

        with pytest.raises(InvalidState):
            await store.toggle_sticky(5)

        assert sets_of(store) == (set(), {5})


class TestPruneAndCommit:
    """Test in-place pruning and batch commits."""

    @pytest.mark.asyncio
    async def test_prune_sticky_keeps_live_windows(self, store):
        seed(store, sticky={5, 9}, staged={11})

        dropped = await store.prune_sticky({5, 11})

        assert dropped == {9}
        assert sets_of(store) == ({5}, {11})

    @pytest.mark.asyncio
    async def test_commit_transfer_moves_batch(self, store):
        seed(store, sticky={1, 2, 3})

        committed = await store.commit_transfer([1, 3], Membership.STICKY)

        assert committed == [1, 3]
        assert sets_of(store) == ({2}, {1, 3})

    @pytest.mark.asyncio
    async def test_commit_transfer_skips_ids_that_left_source(self, store):
        seed(store, sticky={1}, staged={7})

        committed = await store.commit_transfer([1, 2], Membership.STICKY)

        assert committed == [1]
        assert sets_of(store) == (set(), {1, 7})

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self, store):
        seed(store, sticky={1}, staged={2})

        sticky = await store.snapshot_sticky()
        sticky.add(99)

        assert await store.snapshot_sticky() == {1}
        assert await store.snapshot_staged() == {2}
        assert await store.is_sticky(1)
        assert await store.is_staged(2)
        assert not await store.is_staged(1)


class TestTransaction:
    """Test transaction primitives and the overlap check."""

    @pytest.mark.asyncio
    async def test_put_leaves_other_set(self, store):
        seed(store, sticky={4})

        async with store.transaction() as txn:
            assert txn.put(4, Membership.STAGED) is True
            assert txn.put(4, Membership.STAGED) is False

        assert sets_of(store) == (set(), {4})

    @pytest.mark.asyncio
    async def test_take_missing_window(self, store):
        async with store.transaction() as txn:
            assert txn.take(4, Membership.STICKY) is False

    @pytest.mark.asyncio
    async def test_overlap_is_detected(self, store):
        with pytest.raises(AssertionError):
            async with store.transaction():
                store._sets[Membership.STICKY].add(8)
                store._sets[Membership.STAGED].add(8)

    @pytest.mark.asyncio
    async def test_readers_wait_for_open_transaction(self):
        store = StateStore()
        seed(store, sticky={6})
        release = asyncio.Event()

        async def hold_transition():
            async with store.transaction() as txn:
                txn.take(6, Membership.STICKY)
                await release.wait()
                txn.put(6, Membership.STAGED)

        holder = asyncio.create_task(hold_transition())
        await asyncio.sleep(0)

        reader = asyncio.create_task(store.snapshot_sticky())
        await asyncio.sleep(0)
        assert not reader.done()

        release.set()
        await holder

        assert await reader == set()
        assert await store.snapshot_staged() == {6}
