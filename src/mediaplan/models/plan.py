"""Models for rename and recognition plans.

A plan is a persisted description of a filesystem (or metadata) mutation that
is waiting for a human decision.
- RenameFilesPlan: an ordered list of RenameTask moves under one media folder.
- RecognizeMediaFilePlan: an ordered list of season/episode labels for files
  under one media folder.

Design:
- Recognition and renaming are separate plans with separate confirmation
  points: labelling a file never moves bytes.
- Both carry a ``task`` discriminator so a persisted record can be parsed back
  into the right model (see ``parse_plan``).
- Plans are frozen; PlanStore is the only component that creates a copy with a
  different ``status``.
"""

import uuid
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from mediaplan.core.path_safety import to_posix_path
from mediaplan.models.core import (
    PlanStatus,
    RecognizedFile,
    RejectionReason,
    RenameTask,
    TaskResult,
)

RENAME_FILES_TASK = "rename-files"
RECOGNIZE_MEDIA_FILE_TASK = "recognize-media-file"


def _new_plan_id() -> str:
    return str(uuid.uuid4())


class _PlanBase(BaseModel):
    """Fields shared by every plan type."""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    id: str = Field(default_factory=_new_plan_id)
    """Unique identifier for this plan (UUID4)."""

    status: PlanStatus = PlanStatus.PENDING
    """Current lifecycle status."""

    reason: Optional[RejectionReason] = None
    """Why the plan was rejected; None unless status is ``rejected``."""

    media_folder_path: str
    """The managed media folder every path in the plan must live under."""

    created_at: datetime = Field(default_factory=datetime.now)
    """When the plan was admitted (or archived)."""

    updated_at: Optional[datetime] = None
    """When the status last changed."""

    @field_validator("media_folder_path")
    @classmethod
    def _folder_to_posix(cls, value: str) -> str:
        return to_posix_path(value)


class RenameFilesPlan(_PlanBase):
    """A batch of renames inside one media folder."""

    task: Literal["rename-files"] = RENAME_FILES_TASK

    files: List[RenameTask] = Field(default_factory=list)
    """Ordered rename operations."""

    execution_results: List[TaskResult] = Field(default_factory=list)
    """Per-task results of the last (partial) execution, if any."""

    @property
    def needs_follow_up(self) -> bool:
        """True when the plan was confirmed but only partly applied."""
        return self.status is PlanStatus.PENDING and any(
            not result.success for result in self.execution_results
        )


class RecognizeMediaFilePlan(_PlanBase):
    """A batch of season/episode labels for files inside one media folder."""

    task: Literal["recognize-media-file"] = RECOGNIZE_MEDIA_FILE_TASK

    files: List[RecognizedFile] = Field(default_factory=list)
    """Ordered recognized files."""

    @property
    def needs_follow_up(self) -> bool:
        """Recognition plans are never partly applied."""
        return False


Plan = Annotated[
    Union[RenameFilesPlan, RecognizeMediaFilePlan], Field(discriminator="task")
]

_PLAN_ADAPTER: TypeAdapter[Any] = TypeAdapter(Plan)


def parse_plan(data: Union[str, bytes, dict]) -> Union[RenameFilesPlan, RecognizeMediaFilePlan]:
    """Parse a persisted plan record into the matching plan model.

    Args:
        data: JSON text or an already-decoded dict.

    Returns:
        A RenameFilesPlan or RecognizeMediaFilePlan, chosen by ``task``.
    """
    if isinstance(data, (str, bytes)):
        return _PLAN_ADAPTER.validate_json(data)
    return _PLAN_ADAPTER.validate_python(data)


__all__ = [
    "Plan",
    "RenameFilesPlan",
    "RecognizeMediaFilePlan",
    "RENAME_FILES_TASK",
    "RECOGNIZE_MEDIA_FILE_TASK",
    "parse_plan",
]
