"""Core domain models for mediaplan.

This module defines the value objects shared by every part of the planning
engine.
- RenameTask: one ``from -> to`` move, POSIX-normalized at construction.
- RecognizedFile: one ``(season, episode, path)`` label for a video file.
- TaskResult: the per-task outcome reported by a rename executor.
- PlanStatus / RejectionReason: the plan lifecycle vocabulary.

Design:
- Models are frozen. Once a task is part of a plan it cannot be edited, and only
  PlanStore produces a plan with a different status (via ``model_copy``).
- Field names on the wire are camelCase (``from``, ``to``); Python attributes are
  snake_case because ``from`` is a keyword.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mediaplan.core.path_safety import to_posix_path


class PlanStatus(str, Enum):
    """Lifecycle status of a plan.

    ``pending`` is the only non-terminal status. ``completed`` and ``rejected``
    are terminal and retained for audit.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are accepted from this status."""
        return self is not PlanStatus.PENDING


class RejectionReason(str, Enum):
    """Why a plan ended up ``rejected``.

    Explicit user rejection and a timed-out or aborted confirmation carry
    distinct codes so callers can decide whether to re-prompt.
    """

    VALIDATION = "validation"
    USER_REJECTED = "user_rejected"
    TIMEOUT = "timeout"
    ABORTED = "aborted"
    EXPIRED = "expired"
    MANUAL = "manual"


class RenameTask(BaseModel):
    """A single file move inside a media folder."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    """Absolute path of the file to rename (POSIX form)."""

    destination: str = Field(alias="to")
    """Absolute path the file is renamed to (POSIX form)."""

    @field_validator("source", "destination")
    @classmethod
    def _to_posix(cls, value: str) -> str:
        # Only separators and drive letters are rewritten; "." and ".." segments
        # are kept so path safety checks can still see them.
        return to_posix_path(value)


class RecognizedFile(BaseModel):
    """A video file labelled with its season and episode number."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    season: int = Field(ge=0)
    """Season number; 0 is used for specials."""

    episode: int = Field(ge=1)
    """Episode number within the season."""

    path: str
    """Absolute path of the video file (POSIX form)."""

    @field_validator("path")
    @classmethod
    def _to_posix(cls, value: str) -> str:
        return to_posix_path(value)


class TaskResult(BaseModel):
    """Outcome of applying one RenameTask."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task: RenameTask
    success: bool
    error: Optional[str] = None
