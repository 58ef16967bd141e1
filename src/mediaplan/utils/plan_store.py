"""Durable storage for rename and recognition plans.

Each plan is kept in the plans directory as two files:
- ``<id>.plan.json``: the plan itself (pydantic JSON, camelCase keys).
- ``<id>.meta.yaml``: the audit trail of status changes.

Design:
- PlanStore is an explicit instance bound to one directory and passed to whoever
  needs it; there is no module-level store.
- It is the only component that changes a plan's ``status``. Transitions go from
  ``pending`` to ``completed`` or ``rejected`` exactly once; repeating the same
  terminal transition is a no-op so retried confirmations are harmless.
- Files are written to a temporary file and moved into place, so a crash never
  leaves a half-written plan behind.
- Admission runs the path safety checks; a plan that fails them is never stored
  as ``pending``.
"""

import logging
import os
import re
import tempfile
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from mediaplan.core.path_safety import validate_recognized_files, validate_rename_tasks
from mediaplan.errors import InvalidTransitionError, PlanNotFoundError, PlanValidationError
from mediaplan.models.core import PlanStatus, RejectionReason, TaskResult
from mediaplan.models.plan import RecognizeMediaFilePlan, RenameFilesPlan, parse_plan
from mediaplan.utils.config import get_plans_dir

logger = logging.getLogger(__name__)

AnyPlan = Union[RenameFilesPlan, RecognizeMediaFilePlan]

PLAN_SUFFIX = ".plan.json"
META_SUFFIX = ".meta.yaml"

_PLAN_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _path_representer(dumper: yaml.SafeDumper, data: Path) -> yaml.ScalarNode:
    """Custom YAML representer for Path objects."""
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data))


def _enum_representer(dumper: yaml.SafeDumper, data: Enum) -> yaml.ScalarNode:
    """Custom YAML representer for Enum objects."""
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data.value))


yaml.SafeDumper.add_representer(Path, _path_representer)
yaml.SafeDumper.add_multi_representer(Enum, _enum_representer)


class PlanEvent(BaseModel):
    """One entry of a plan's audit trail."""

    status: PlanStatus
    reason: Optional[RejectionReason] = None
    at: datetime = Field(default_factory=datetime.now)
    detail: Optional[str] = None


class PlanMeta(BaseModel):
    """Contents of ``<id>.meta.yaml``."""

    id: str
    task: str
    media_folder_path: str
    history: List[PlanEvent] = Field(default_factory=list)


def validate_plan(plan: AnyPlan) -> List[str]:
    """Return the admission violations for *plan* (empty when admissible)."""
    if isinstance(plan, RenameFilesPlan):
        return validate_rename_tasks(plan.media_folder_path, plan.files)
    return validate_recognized_files(plan.media_folder_path, plan.files)


def _atomic_write_text(path: Path, text: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class PlanStore:
    """Persist plans and guard their status transitions.

    Example:
        >>> store = PlanStore(Path("/tmp/plans"))
        >>> plan_id = store.create(RenameFilesPlan(media_folder_path="/media/Show"))
        >>> store.get(plan_id).status
        <PlanStatus.PENDING: 'pending'>
    """

    def __init__(self, plans_dir: Path) -> None:
        """Bind the store to *plans_dir*, creating it if needed."""
        self.plans_dir = Path(plans_dir)
        self.plans_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, plans_dir: Optional[Path] = None) -> "PlanStore":
        """Build a store for the configured ``plans.dir``."""
        return cls(get_plans_dir(plans_dir))

    # ------------------------------------------------------------------
    # Paths and raw IO
    # ------------------------------------------------------------------

    def _plan_path(self, plan_id: str) -> Path:
        if not _PLAN_ID_RE.match(plan_id):
            raise PlanNotFoundError(plan_id)
        return self.plans_dir / f"{plan_id}{PLAN_SUFFIX}"

    def _meta_path(self, plan_id: str) -> Path:
        return self.plans_dir / f"{plan_id}{META_SUFFIX}"

    def _write_plan(self, plan: AnyPlan) -> None:
        _atomic_write_text(
            self._plan_path(plan.id), plan.model_dump_json(by_alias=True, indent=2)
        )

    def _read_meta(self, plan: AnyPlan) -> PlanMeta:
        meta_path = self._meta_path(plan.id)
        if meta_path.exists():
            with open(meta_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if isinstance(data, dict):
                try:
                    return PlanMeta.model_validate(data)
                except ValidationError as e:
                    logger.warning("Ignoring unreadable metadata %s: %s", meta_path, e)
        return PlanMeta(
            id=plan.id, task=plan.task, media_folder_path=plan.media_folder_path
        )

    def _append_event(self, plan: AnyPlan, event: PlanEvent) -> None:
        meta = self._read_meta(plan)
        meta.history.append(event)
        _atomic_write_text(
            self._meta_path(plan.id),
            yaml.safe_dump(meta.model_dump(), sort_keys=False, allow_unicode=True),
        )

    def _save(self, plan: AnyPlan, event: PlanEvent) -> None:
        self._write_plan(plan)
        self._append_event(plan, event)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def create(self, plan: AnyPlan) -> str:
        """Validate and persist *plan* as ``pending``.

        Args:
            plan: A RenameFilesPlan or RecognizeMediaFilePlan.

        Returns:
            str: The plan id.

        Raises:
            PlanValidationError: If any path safety check fails. Nothing is
                stored in that case.
            FileExistsError: If a plan with the same id is already stored.
        """
        violations = validate_plan(plan)
        if violations:
            raise PlanValidationError(violations, plan_id=plan.id)
        with self._lock:
            if self._plan_path(plan.id).exists():
                raise FileExistsError(f"Plan {plan.id} already exists")
            now = datetime.now()
            stored = plan.model_copy(
                update={"status": PlanStatus.PENDING, "reason": None, "updated_at": now}
            )
            self._save(stored, PlanEvent(status=PlanStatus.PENDING, at=now))
        logger.info("Created %s plan %s (%d files)", plan.task, plan.id, len(plan.files))
        return stored.id

    def archive_rejected(
        self,
        plan: AnyPlan,
        reason: RejectionReason = RejectionReason.VALIDATION,
        detail: Optional[str] = None,
    ) -> AnyPlan:
        """Store *plan* directly as ``rejected`` for the audit trail.

        Used for plans that failed admission, so the record of what was
        attempted survives even though the plan never became pending.
        """
        now = datetime.now()
        archived = plan.model_copy(
            update={"status": PlanStatus.REJECTED, "reason": reason, "updated_at": now}
        )
        with self._lock:
            self._save(
                archived,
                PlanEvent(status=PlanStatus.REJECTED, reason=reason, at=now, detail=detail),
            )
        logger.info("Archived rejected plan %s (%s)", plan.id, reason.value)
        return archived

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, plan_id: str) -> AnyPlan:
        """Load a plan by id.

        Raises:
            PlanNotFoundError: If no plan with that id is stored.
        """
        plan_path = self._plan_path(plan_id)
        if not plan_path.exists():
            raise PlanNotFoundError(plan_id)
        return parse_plan(plan_path.read_text(encoding="utf-8"))

    def list_plans(
        self, status: Optional[PlanStatus] = None, task: Optional[str] = None
    ) -> List[AnyPlan]:
        """List stored plans, oldest first.

        Args:
            status: Only return plans in this status.
            task: Only return plans of this task type.

        Unreadable plan files are skipped with a warning.
        """
        plans: List[AnyPlan] = []
        for plan_file in sorted(self.plans_dir.glob(f"*{PLAN_SUFFIX}")):
            try:
                plan = parse_plan(plan_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable plan file %s: %s", plan_file, e)
                continue
            if status is not None and plan.status is not status:
                continue
            if task is not None and plan.task != task:
                continue
            plans.append(plan)
        plans.sort(key=lambda p: p.created_at)
        return plans

    def history(self, plan_id: str) -> List[PlanEvent]:
        """Return the recorded status changes of a plan, oldest first."""
        return list(self._read_meta(self.get(plan_id)).history)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def transition(
        self,
        plan_id: str,
        target: PlanStatus,
        reason: Optional[RejectionReason] = None,
        detail: Optional[str] = None,
    ) -> bool:
        """Move a pending plan to a terminal status.

        Args:
            plan_id: The plan to transition.
            target: ``completed`` or ``rejected``.
            reason: Why the plan is rejected; defaults to ``manual``.
            detail: Free-form note stored in the audit trail.

        Returns:
            bool: True if the status changed, False if the plan already was in
            *target* (repeat deliveries are a no-op).

        Raises:
            PlanNotFoundError: If the plan does not exist.
            InvalidTransitionError: If *target* is not terminal, or the plan
                is already in a different terminal status.
        """
        target = PlanStatus(target)
        with self._lock:
            plan = self.get(plan_id)
            if not target.is_terminal:
                raise InvalidTransitionError(plan_id, plan.status.value, target.value)
            if plan.status is target:
                logger.debug("Plan %s already %s", plan_id, target.value)
                return False
            if plan.status is not PlanStatus.PENDING:
                raise InvalidTransitionError(plan_id, plan.status.value, target.value)
            if target is PlanStatus.REJECTED:
                reason = reason or RejectionReason.MANUAL
            else:
                reason = None
            now = datetime.now()
            updated = plan.model_copy(
                update={"status": target, "reason": reason, "updated_at": now}
            )
            self._save(
                updated,
                PlanEvent(status=target, reason=reason, at=now, detail=detail),
            )
        logger.info(
            "Plan %s -> %s%s", plan_id, target.value, f" ({reason.value})" if reason else ""
        )
        return True

    def record_execution(self, plan_id: str, results: Sequence[TaskResult]) -> RenameFilesPlan:
        """Attach per-task execution results to a pending rename plan.

        The plan keeps its ``pending`` status; with any failed result it is
        reported as needing follow-up.

        Raises:
            PlanNotFoundError: If the plan does not exist.
            InvalidTransitionError: If the plan is not a pending rename plan.
        """
        with self._lock:
            plan = self.get(plan_id)
            if not isinstance(plan, RenameFilesPlan) or plan.status is not PlanStatus.PENDING:
                raise InvalidTransitionError(plan_id, plan.status.value, "executed")
            now = datetime.now()
            updated = plan.model_copy(
                update={"execution_results": list(results), "updated_at": now}
            )
            failed = sum(1 for r in results if not r.success)
            self._save(
                updated,
                PlanEvent(
                    status=PlanStatus.PENDING,
                    at=now,
                    detail=f"executed: {len(results) - failed} ok, {failed} failed",
                ),
            )
        return updated

    def summary(self) -> Dict[str, Any]:
        """Count stored plans per status."""
        counts: Dict[str, Any] = {status.value: 0 for status in PlanStatus}
        for plan in self.list_plans():
            counts[plan.status.value] += 1
        return counts
