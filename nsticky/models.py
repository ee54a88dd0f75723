"""
Pydantic data models for nsticky.

Defines workspace references, compositor events and client requests with
validation rules.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Enumerations

class Membership(str, Enum):
    """Which of the two window sets an id belongs to."""
    STICKY = "sticky"
    STAGED = "staged"

    @property
    def other(self) -> "Membership":
        return Membership.STAGED if self is Membership.STICKY else Membership.STICKY


class StageToggle(str, Enum):
    """Outcome of the combined stage/unstage toggle on the focused window."""
    STAGED = "staged"
    UNSTAGED = "unstaged"


class Command(str, Enum):
    """Commands understood by the request server."""
    ADD = "add"
    REMOVE = "remove"
    LIST = "list"
    TOGGLE_ACTIVE = "toggle_active"
    STAGE = "stage"
    UNSTAGE = "unstage"


class Target(str, Enum):
    """Selector for stage/unstage commands."""
    WINDOW = "window"
    ALL = "all"
    LIST = "list"
    ACTIVE = "active"


# Core Entities

class WorkspaceRef(BaseModel):
    """Move destination: a numeric workspace id or a named workspace.

    Example:
        >>> WorkspaceRef.by_id(3).to_niri()
        {'Id': 3}
        >>> WorkspaceRef.by_name("stage").to_niri()
        {'Name': 'stage'}
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(None, ge=0, description="niri workspace id")
    name: Optional[str] = Field(None, min_length=1, description="niri workspace name")

    @model_validator(mode='after')
    def validate_exactly_one(self):
        """Exactly one of id and name must be set."""
        if (self.id is None) == (self.name is None):
            raise ValueError("WorkspaceRef requires exactly one of id or name")
        return self

    @classmethod
    def by_id(cls, workspace_id: int) -> "WorkspaceRef":
        return cls(id=workspace_id)

    @classmethod
    def by_name(cls, name: str) -> "WorkspaceRef":
        return cls(name=name)

    def to_niri(self) -> Dict[str, Any]:
        """Render as the ``reference`` field of a niri MoveWindowToWorkspace action."""
        if self.id is not None:
            return {"Id": self.id}
        return {"Name": self.name}

    def __str__(self) -> str:
        return str(self.id) if self.id is not None else self.name


class WorkspaceActivated(BaseModel):
    """niri ``WorkspaceActivated`` event payload."""

    id: int = Field(..., ge=0, strict=True, description="Activated workspace id")
    focused: bool = Field(False, description="Whether the workspace also got focus")


class Request(BaseModel):
    """A parsed client request line."""

    model_config = ConfigDict(frozen=True)

    command: Command
    target: Optional[Target] = None
    window_id: Optional[int] = Field(None, ge=0)

    @model_validator(mode='after')
    def validate_target(self):
        """Stage/unstage need a target; a window target needs an id."""
        if self.command in (Command.STAGE, Command.UNSTAGE) and self.target is None:
            raise ValueError(f"{self.command.value} requires a target")
        if self.command is Command.UNSTAGE and self.target is Target.LIST:
            raise ValueError("unstage does not support --list")
        if self.target is Target.WINDOW and self.window_id is None:
            raise ValueError("window target requires window_id")
        if self.command in (Command.ADD, Command.REMOVE) and self.window_id is None:
            raise ValueError(f"{self.command.value} requires window_id")
        return self

    def to_line(self) -> str:
        """Render the request back into its protocol line (without newline)."""
        parts = [self.command.value]
        if self.target is Target.WINDOW or self.command in (Command.ADD, Command.REMOVE):
            parts.append(str(self.window_id))
        elif self.target is not None:
            parts.append(f"--{self.target.value}")
        return " ".join(parts)
