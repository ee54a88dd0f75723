"""
Line protocol between the nsticky CLI and daemon.

One request line per connection, one response line back:

    add <id> | remove <id> | list | toggle_active
    stage <id> | stage --all | stage --list | stage --active
    unstage <id> | unstage --all | unstage --active

Window ids are plain ASCII decimal digits below 2**64. Signs (``+5``,
``-5``), whitespace inside the number and non-ASCII digits are rejected as
``Invalid window id``.

Responses are a plain message, a data line with a list of window ids, or
``Error: <reason>``.
"""

from enum import Enum
from typing import Iterable

from pydantic import BaseModel

from .errors import ProtocolError
from .models import Command, Request, Target

STAGE_FLAGS = {
    "--all": Target.ALL,
    "--list": Target.LIST,
    "--active": Target.ACTIVE,
}

UNSTAGE_FLAGS = {
    "--all": Target.ALL,
    "--active": Target.ACTIVE,
}


class ResponseKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    DATA = "data"


class Response(BaseModel):
    """A single response line."""

    kind: ResponseKind
    text: str

    @classmethod
    def success(cls, message: str) -> "Response":
        return cls(kind=ResponseKind.SUCCESS, text=message)

    @classmethod
    def error(cls, message: str) -> "Response":
        return cls(kind=ResponseKind.ERROR, text=message)

    @classmethod
    def data(cls, window_ids: Iterable[int]) -> "Response":
        return cls(kind=ResponseKind.DATA, text=format_id_list(window_ids))

    def render(self) -> str:
        """Wire form, newline-terminated."""
        if self.kind is ResponseKind.ERROR:
            return f"Error: {self.text}\n"
        return f"{self.text}\n"


def format_id_list(window_ids: Iterable[int]) -> str:
    """Render window ids as ``[1, 2, 3]`` in ascending order."""
    return "[" + ", ".join(str(window_id) for window_id in sorted(window_ids)) + "]"


def _parse_window_id(token: str, line: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise ProtocolError("Invalid window id", line=line)
    window_id = int(token)
    if window_id >= 2 ** 64:
        raise ProtocolError("Invalid window id", line=line)
    return window_id


def parse_request(line: str) -> Request:
    """Parse one request line.

    Raises:
        ProtocolError: Unknown command, missing argument or non-numeric id
    """
    parts = line.split()
    if not parts:
        raise ProtocolError("Unknown command", line=line)

    name, args = parts[0], parts[1:]

    if name in (Command.ADD.value, Command.REMOVE.value):
        if not args:
            raise ProtocolError("Missing window id", line=line)
        return Request(command=Command(name), window_id=_parse_window_id(args[0], line))

    if name == Command.LIST.value:
        return Request(command=Command.LIST)

    if name == Command.TOGGLE_ACTIVE.value:
        return Request(command=Command.TOGGLE_ACTIVE)

    if name in (Command.STAGE.value, Command.UNSTAGE.value):
        command = Command(name)
        if not args:
            raise ProtocolError(f"Missing argument for {name}", line=line)

        flags = STAGE_FLAGS if command is Command.STAGE else UNSTAGE_FLAGS
        if args[0] in flags:
            return Request(command=command, target=flags[args[0]])
        return Request(
            command=command,
            target=Target.WINDOW,
            window_id=_parse_window_id(args[0], line),
        )

    raise ProtocolError("Unknown command", line=line)
