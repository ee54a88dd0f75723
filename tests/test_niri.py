"""
Tests for the niri IPC client.

Parsing helpers are tested directly; NiriClient is tested against a fake niri
socket server and a stub ``niri`` executable.
"""

import asyncio
import json
import shutil
import stat
import tempfile
from pathlib import Path

import pytest

from nsticky.errors import (
    ActiveWindowUnavailable,
    EventStreamClosed,
    RegistryError,
    RemoteActionFailure,
)
from nsticky.models import WorkspaceActivated, WorkspaceRef
from nsticky.niri import (
    NiriClient,
    action_reply_error,
    build_move_action,
    parse_active_workspace_id,
    parse_event_line,
    parse_focused_window_id,
    parse_window_ids,
)


class TestParsing:
    """Test decoding of niri JSON output."""

    def test_window_ids(self):
        payload = [{"id": 3, "app_id": "mpv"}, {"id": 8}, {"title": "no id"}, {"id": -1}, {"id": True}]
        assert parse_window_ids(payload) == {3, 8}

    def test_window_ids_rejects_non_array(self):
        with pytest.raises(RegistryError):
            parse_window_ids({"Err": "nope"})

    def test_focused_window(self):
        assert parse_focused_window_id({"id": 12, "title": "term"}) == 12

    def test_no_focused_window(self):
        with pytest.raises(ActiveWindowUnavailable):
            parse_focused_window_id(None)

    def test_focused_workspace_wins_over_active(self):
        payload = [
            {"id": 1, "is_active": True, "is_focused": False},
            {"id": 2, "is_active": True, "is_focused": True},
        ]
        assert parse_active_workspace_id(payload) == 2

    def test_active_workspace_fallback(self):
        payload = [{"id": 1, "is_active": False}, {"id": 4, "is_active": True}]
        assert parse_active_workspace_id(payload) == 4

    def test_no_active_workspace(self):
        with pytest.raises(ActiveWindowUnavailable):
            parse_active_workspace_id([{"id": 1, "is_active": False}])

    @pytest.mark.parametrize("line, expected", [
        ('{"WorkspaceActivated": {"id": 3, "focused": true}}', WorkspaceActivated(id=3, focused=True)),
        (b'{"WorkspaceActivated": {"id": 5}}\n', WorkspaceActivated(id=5)),
        ('{"Ok": "Handled"}', None),
        ('{"WindowFocusChanged": {"id": 3}}', None),
        ('{"WorkspaceActivated": {"id": "3"}}', None),
        ('{"WorkspaceActivated": {"id": -2}}', None),
        ('{"WorkspaceActivated": {}}', None),
        ('not json', None),
        ('[1, 2]', None),
    ])
    def test_event_lines(self, line, expected):
        assert parse_event_line(line) == expected

    def test_move_action_shape(self):
        assert build_move_action(7, WorkspaceRef.by_name("stage")) == {
            "Action": {
                "MoveWindowToWorkspace": {
                    "window_id": 7,
                    "focus": False,
                    "reference": {"Name": "stage"},
                }
            }
        }
        assert build_move_action(7, WorkspaceRef.by_id(2))["Action"]["MoveWindowToWorkspace"]["reference"] == {"Id": 2}

    @pytest.mark.parametrize("reply, error", [
        ('{"Ok": "Handled"}\n', None),
        ('{"Err": "window not found"}\n', "window not found"),
        ("", "empty reply from niri"),
    ])
    def test_action_replies(self, reply, error):
        assert action_reply_error(reply) == error


@pytest.fixture
def socket_dir():
    # AF_UNIX paths are limited to ~108 bytes, so avoid pytest's long tmp_path
    path = Path(tempfile.mkdtemp(prefix="niri-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


class FakeNiriSocket:
    """Minimal niri IPC socket: answers actions and serves an event stream."""

    def __init__(self, path: Path, reply: str = '{"Ok":"Handled"}', events=()):
        self.path = path
        self.reply = reply
        self.events = list(events)
        self.requests = []
        self.server = None

    async def _handle(self, reader, writer):
        line = await reader.readline()
        request = json.loads(line)
        self.requests.append(request)

        if request == "EventStream":
            writer.write(b'{"Ok":"Handled"}\n')
            for event in self.events:
                writer.write((event + "\n").encode())
        else:
            writer.write((self.reply + "\n").encode())

        await writer.drain()
        writer.close()

    async def __aenter__(self):
        self.server = await asyncio.start_unix_server(self._handle, path=str(self.path))
        return self

    async def __aexit__(self, *exc):
        self.server.close()
        await self.server.wait_closed()


class TestActions:
    """Test move_window against a fake niri socket."""

    @pytest.mark.asyncio
    async def test_move_window_sends_action(self, socket_dir):
        path = socket_dir / "niri.sock"
        async with FakeNiriSocket(path) as niri:
            client = NiriClient(path)
            await client.move_window(7, WorkspaceRef.by_id(3))

        assert niri.requests == [build_move_action(7, WorkspaceRef.by_id(3))]

    @pytest.mark.asyncio
    async def test_err_reply_raises(self, socket_dir):
        path = socket_dir / "niri.sock"
        async with FakeNiriSocket(path, reply='{"Err":"no such window"}'):
            client = NiriClient(path)
            with pytest.raises(RemoteActionFailure) as exc_info:
                await client.move_window(7, WorkspaceRef.by_name("stage"))

        assert "no such window" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_socket_raises(self, socket_dir):
        client = NiriClient(socket_dir / "absent.sock")

        with pytest.raises(RemoteActionFailure):
            await client.move_window(7, WorkspaceRef.by_id(3))

    @pytest.mark.asyncio
    async def test_unset_socket_raises(self):
        with pytest.raises(RemoteActionFailure):
            await NiriClient(None).move_window(7, WorkspaceRef.by_id(3))


class TestEventStream:
    """Test the event subscription."""

    @pytest.mark.asyncio
    async def test_yields_workspace_activations_then_closes(self, socket_dir):
        path = socket_dir / "niri.sock"
        events = [
            '{"WorkspacesChanged": {"workspaces": []}}',
            '{"WorkspaceActivated": {"id": 2, "focused": true}}',
            'garbage',
            '{"WorkspaceActivated": {"id": 5, "focused": false}}',
        ]
        received = []

        async with FakeNiriSocket(path, events=events) as niri:
            client = NiriClient(path)
            with pytest.raises(EventStreamClosed):
                async for event in client.event_stream():
                    received.append(event.id)

        assert received == [2, 5]
        assert niri.requests == ["EventStream"]

    @pytest.mark.asyncio
    async def test_connect_failure(self, socket_dir):
        client = NiriClient(socket_dir / "absent.sock")

        with pytest.raises(EventStreamClosed):
            async for _ in client.event_stream():
                pass


@pytest.fixture
def fake_niri_bin(tmp_path):
    """Stub ``niri`` executable answering ``niri msg --json <what>``."""
    script = tmp_path / "niri"
    script.write_text(
        "#!/bin/sh\n"
        'case "$3" in\n'
        '  windows) echo \'[{"id": 1}, {"id": 4}]\' ;;\n'
        '  focused-window) echo \'{"id": 4}\' ;;\n'
        '  workspaces) echo \'[{"id": 9, "is_active": true, "is_focused": true}]\' ;;\n'
        '  *) echo "unknown request" >&2; exit 1 ;;\n'
        "esac\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


class TestQueries:
    """Test registry queries through a stub niri binary."""

    @pytest.mark.asyncio
    async def test_queries(self, fake_niri_bin):
        client = NiriClient(None, niri_command=str(fake_niri_bin))

        assert await client.query_all_window_ids() == {1, 4}
        assert await client.query_focused_window_id() == 4
        assert await client.query_active_workspace_id() == 9

    @pytest.mark.asyncio
    async def test_failed_command_raises_registry_error(self, fake_niri_bin):
        client = NiriClient(None, niri_command=str(fake_niri_bin))

        with pytest.raises(RegistryError) as exc_info:
            await client._msg("outputs")

        assert "unknown request" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_binary_raises_registry_error(self, tmp_path):
        client = NiriClient(None, niri_command=str(tmp_path / "no-such-niri"))

        with pytest.raises(RegistryError):
            await client.query_all_window_ids()
