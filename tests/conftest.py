"""Pytest configuration and fixtures for nsticky tests."""

import sys
from pathlib import Path
from typing import AsyncIterator, Iterable, List, Optional, Set, Tuple

import pytest

# Make the nsticky package importable without installation
package_root = Path(__file__).parent.parent
if str(package_root) not in sys.path:
    sys.path.insert(0, str(package_root))

from nsticky.engine import TransitionEngine  # noqa: E402
from nsticky.errors import (  # noqa: E402
    ActiveWindowUnavailable,
    EventStreamClosed,
    RegistryError,
    RemoteActionFailure,
)
from nsticky.models import Membership, WorkspaceActivated, WorkspaceRef  # noqa: E402
from nsticky.state import StateStore  # noqa: E402


class FakeNiri:
    """In-memory stand-in for niri: registry, executor and event source.

    Records every move attempt and fails moves for ids listed in ``failing``.
    """

    def __init__(
        self,
        windows: Iterable[int] = (),
        focused: Optional[int] = None,
        workspace: Optional[int] = 1,
    ) -> None:
        self.windows: Set[int] = set(windows)
        self.focused = focused
        self.workspace = workspace
        self.failing: Set[int] = set()
        self.registry_down = False
        self.moves: List[Tuple[int, WorkspaceRef]] = []
        self.events: List[WorkspaceActivated] = []

    async def query_all_window_ids(self) -> Set[int]:
        if self.registry_down:
            raise RegistryError("windows", "niri is not running")
        return set(self.windows)

    async def query_focused_window_id(self) -> int:
        if self.registry_down:
            raise RegistryError("focused-window", "niri is not running")
        if self.focused is None:
            raise ActiveWindowUnavailable("No focused window")
        return self.focused

    async def query_active_workspace_id(self) -> int:
        if self.registry_down:
            raise RegistryError("workspaces", "niri is not running")
        if self.workspace is None:
            raise ActiveWindowUnavailable("Failed to get active workspace ID")
        return self.workspace

    async def move_window(self, window_id: int, destination: WorkspaceRef) -> None:
        self.moves.append((window_id, destination))
        if window_id in self.failing:
            raise RemoteActionFailure(window_id, str(destination), "window vanished")

    async def event_stream(self) -> AsyncIterator[WorkspaceActivated]:
        for event in self.events:
            yield event
        raise EventStreamClosed("connection closed by niri")


def sets_of(store: StateStore) -> Tuple[Set[int], Set[int]]:
    """Direct read of both sets for assertions (bypasses the lock)."""
    return set(store._sets[Membership.STICKY]), set(store._sets[Membership.STAGED])


def seed(store: StateStore, sticky: Iterable[int] = (), staged: Iterable[int] = ()) -> None:
    store._sets[Membership.STICKY].update(sticky)
    store._sets[Membership.STAGED].update(staged)


@pytest.fixture
def niri() -> FakeNiri:
    return FakeNiri(windows={1, 2, 3, 5, 9, 42}, focused=42, workspace=7)


@pytest.fixture
def store() -> StateStore:
    return StateStore()


@pytest.fixture
def engine(store, niri) -> TransitionEngine:
    return TransitionEngine(store, registry=niri, executor=niri, stage_workspace="stage")
