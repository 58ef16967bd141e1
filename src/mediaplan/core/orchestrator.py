"""Plan orchestrator: from a candidate task set to an applied or rejected plan.

State machine for one plan:

1. ``created``: path safety admission. A failing plan is archived as
   ``rejected`` (reason ``validation``) and PlanValidationError is raised; no
   confirmation is requested.
2. ``pending``: stored by PlanStore, then a confirmation is requested.
3. Confirmed: the rename executor runs under the media folder's lock. All tasks
   succeeded -> ``completed``. Some failed -> the results are recorded, the plan
   stays pending ("needs follow-up") and PartialExecutionError is raised.
   Declined -> ``rejected`` (``user_rejected``). Timed out or aborted ->
   ``rejected`` (``timeout`` / ``aborted``).

A decision made elsewhere while a confirmation is out (a manual reject or
complete, or another confirmation of the same plan) wins: the answer is
re-checked against the stored plan under the folder lock before anything runs.

Nothing is retried automatically; re-prompting is the caller's decision.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Union

from mediaplan.channel.confirmation import ConfirmationChannel
from mediaplan.core.apply import execute_rename_tasks
from mediaplan.core.path_safety import canonical_path, to_platform_path
from mediaplan.errors import (
    ConfirmationAbortedError,
    ConfirmationTimeoutError,
    InvalidTransitionError,
    PartialExecutionError,
    PlanNotFoundError,
    PlanValidationError,
)
from mediaplan.models.confirmation import (
    ASK_FOR_RECOGNIZE_MEDIA_FILES_CONFIRMATION,
    ASK_FOR_RENAME_FILES_CONFIRMATION,
    ConfirmationRequest,
)
from mediaplan.models.core import (
    PlanStatus,
    RecognizedFile,
    RejectionReason,
    RenameTask,
    TaskResult,
)
from mediaplan.models.plan import RecognizeMediaFilePlan, RenameFilesPlan
from mediaplan.utils.config import get_recovery_policy
from mediaplan.utils.plan_store import AnyPlan, PlanStore

logger = logging.getLogger(__name__)

RenameExecutor = Callable[
    [Sequence[RenameTask]], Union[List[TaskResult], Awaitable[List[TaskResult]]]
]
RecognitionApplier = Callable[[RecognizeMediaFilePlan], Union[None, Awaitable[None]]]


@dataclass
class PlanOutcome:
    """Final state of a plan run, with per-task results for rename plans."""

    plan: AnyPlan
    results: List[TaskResult] = field(default_factory=list)

    @property
    def status(self) -> PlanStatus:
        return self.plan.status

    @property
    def reason(self) -> Optional[RejectionReason]:
        return self.plan.reason


def _complete_results(
    tasks: Sequence[RenameTask], results: Sequence[TaskResult]
) -> List[TaskResult]:
    # Tasks the executor did not report on count as failed.
    completed = list(results)[: len(tasks)]
    for task in tasks[len(completed):]:
        completed.append(
            TaskResult(task=task, success=False, error="No result reported by executor")
        )
    return completed


def _settled(plan: AnyPlan) -> PlanOutcome:
    return PlanOutcome(plan, list(getattr(plan, "execution_results", [])))


class PlanOrchestrator:
    """Drives plans through admission, confirmation and execution."""

    def __init__(
        self,
        store: PlanStore,
        channel: ConfirmationChannel,
        executor: RenameExecutor = execute_rename_tasks,
        recognition_applier: Optional[RecognitionApplier] = None,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Wire the orchestrator to its collaborators.

        Args:
            store: Where plans are persisted.
            channel: How confirmations are requested.
            executor: Applies confirmed rename tasks; sync or async.
            recognition_applier: Receives confirmed recognition plans.
            timeout_ms: Default confirmation timeout; the channel's default
                when None.
        """
        self.store = store
        self.channel = channel
        self.executor = executor
        self.recognition_applier = recognition_applier
        self.timeout_ms = timeout_ms
        self._folder_locks: Dict[str, asyncio.Lock] = {}
        self._executing: Set[str] = set()
        self._drafts: Dict[str, RenameFilesPlan] = {}

    def _folder_lock(self, media_folder_path: str) -> asyncio.Lock:
        key = canonical_path(media_folder_path) or media_folder_path
        lock = self._folder_locks.get(key)
        if lock is None:
            lock = self._folder_locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_rename_plan(
        self,
        media_folder_path: str,
        tasks: Sequence[Union[RenameTask, dict]],
        client_id: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PlanOutcome:
        """Admit, confirm and apply a batch of renames.

        Raises:
            PlanValidationError: If the tasks fail admission.
            PartialExecutionError: If some confirmed renames failed.
        """
        plan = RenameFilesPlan(
            media_folder_path=media_folder_path,
            files=[RenameTask.model_validate(t) for t in tasks],
        )
        self._admit(plan)
        return await self.confirm_plan(plan.id, client_id, timeout_ms, cancel_event)

    async def run_recognize_plan(
        self,
        media_folder_path: str,
        files: Sequence[Union[RecognizedFile, dict]],
        client_id: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PlanOutcome:
        """Admit and confirm a batch of season/episode labels.

        Raises:
            PlanValidationError: If a path is abnormal or outside the folder.
        """
        plan = RecognizeMediaFilePlan(
            media_folder_path=media_folder_path,
            files=[RecognizedFile.model_validate(f) for f in files],
        )
        self._admit(plan)
        return await self.confirm_plan(plan.id, client_id, timeout_ms, cancel_event)

    async def confirm_plan(
        self,
        plan_id: str,
        client_id: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PlanOutcome:
        """Ask for confirmation of a stored pending plan and act on the answer.

        If the plan was rejected, completed or executed elsewhere while the
        request was out, nothing runs and the stored state is returned.

        Raises:
            PlanNotFoundError: If the plan does not exist.
            InvalidTransitionError: If the plan is not pending, or was already
                partly applied.
            PartialExecutionError: If some confirmed renames failed.
        """
        plan = self.store.get(plan_id)
        if plan.status is not PlanStatus.PENDING:
            raise InvalidTransitionError(plan_id, plan.status.value, "confirming")
        if plan.needs_follow_up:
            raise InvalidTransitionError(plan_id, "needs follow-up", "confirming")

        request = self._build_request(plan, client_id)
        try:
            response = await self.channel.acknowledge(
                request,
                timeout_ms=timeout_ms if timeout_ms is not None else self.timeout_ms,
                cancel_event=cancel_event,
            )
        except ConfirmationTimeoutError:
            return await self._reject(plan, RejectionReason.TIMEOUT)
        except ConfirmationAbortedError:
            return await self._reject(plan, RejectionReason.ABORTED)

        if not response.confirmed:
            return await self._reject(plan, RejectionReason.USER_REJECTED)

        # Once dispatched, execution runs to the end even if the caller goes away.
        return await asyncio.shield(self._execute(plan))

    async def recover_pending(
        self,
        client_id: Optional[str] = None,
        policy: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> List[PlanOutcome]:
        """Deal with plans left pending by an earlier process.

        Args:
            client_id: Consumer to re-offer plans to.
            policy: ``reoffer`` asks again, ``expire`` rejects with reason
                ``expired``. Defaults to the ``recovery.policy`` setting.
            timeout_ms: Confirmation timeout for re-offered plans.

        Returns:
            One outcome per pending plan, oldest first. Partly applied plans are
            returned untouched; they are never re-offered or re-applied.
        """
        policy = get_recovery_policy(policy)
        outcomes: List[PlanOutcome] = []
        for plan in self.store.list_plans(status=PlanStatus.PENDING):
            if plan.needs_follow_up:
                logger.warning("Plan %s needs follow-up; leaving it pending", plan.id)
                outcomes.append(PlanOutcome(plan, list(plan.execution_results)))
                continue
            if policy == "expire":
                outcomes.append(await self._reject(plan, RejectionReason.EXPIRED))
                continue
            try:
                outcomes.append(
                    await self.confirm_plan(plan.id, client_id, timeout_ms=timeout_ms)
                )
            except PartialExecutionError as e:
                outcomes.append(PlanOutcome(self.store.get(plan.id), e.results))
            except InvalidTransitionError:
                # Decided by someone else since the listing.
                outcomes.append(_settled(self.store.get(plan.id)))
        return outcomes

    # ------------------------------------------------------------------
    # Incremental rename plans
    # ------------------------------------------------------------------

    def begin_rename_plan(self, media_folder_path: str) -> str:
        """Open an empty rename draft for *media_folder_path*.

        Tasks are added one at a time with ``add_rename_task``; the draft only
        becomes a stored plan when ``end_rename_plan`` admits it.

        Returns:
            str: The draft id, which is also the id of the resulting plan.
        """
        draft = RenameFilesPlan(media_folder_path=media_folder_path)
        self._drafts[draft.id] = draft
        logger.info("Opened rename draft %s for %s", draft.id, draft.media_folder_path)
        return draft.id

    def add_rename_task(self, draft_id: str, source: str, destination: str) -> int:
        """Append one rename to an open draft.

        Returns:
            int: How many tasks the draft holds now.

        Raises:
            PlanNotFoundError: If no draft with that id is open.
        """
        draft = self._get_draft(draft_id)
        files = [*draft.files, RenameTask(source=source, destination=destination)]
        self._drafts[draft_id] = draft.model_copy(update={"files": files})
        return len(files)

    async def end_rename_plan(
        self,
        draft_id: str,
        client_id: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PlanOutcome:
        """Close a draft, admit it as a plan and ask for confirmation.

        An empty draft is refused and stays open. Any other outcome closes it,
        including a failed admission (the plan is archived as rejected).

        Raises:
            PlanNotFoundError: If no draft with that id is open.
            ValueError: If the draft has no tasks.
            PlanValidationError: If the tasks fail admission.
            PartialExecutionError: If some confirmed renames failed.
        """
        draft = self._get_draft(draft_id)
        if not draft.files:
            raise ValueError(f'Draft "{draft_id}" has no rename tasks')
        del self._drafts[draft_id]
        plan = draft.model_copy(update={"created_at": datetime.now()})
        self._admit(plan)
        return await self.confirm_plan(plan.id, client_id, timeout_ms, cancel_event)

    def _get_draft(self, draft_id: str) -> RenameFilesPlan:
        try:
            return self._drafts[draft_id]
        except KeyError:
            raise PlanNotFoundError(draft_id) from None

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def list_pending(self) -> List[AnyPlan]:
        """All plans waiting for a decision or follow-up, oldest first."""
        return self.store.list_plans(status=PlanStatus.PENDING)

    def reject_plan(self, plan_id: str) -> bool:
        """Reject a pending plan by hand (reason ``manual``).

        Raises:
            InvalidTransitionError: If the plan is being executed right now.
        """
        self._check_not_executing(plan_id, PlanStatus.REJECTED)
        return self.store.transition(plan_id, PlanStatus.REJECTED, RejectionReason.MANUAL)

    def complete_plan(self, plan_id: str) -> bool:
        """Mark a pending plan completed by hand, e.g. after a manual fix-up."""
        self._check_not_executing(plan_id, PlanStatus.COMPLETED)
        return self.store.transition(plan_id, PlanStatus.COMPLETED, detail="manual")

    def _check_not_executing(self, plan_id: str, target: PlanStatus) -> None:
        if plan_id in self._executing:
            raise InvalidTransitionError(plan_id, "executing", target.value)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _admit(self, plan: AnyPlan) -> None:
        try:
            self.store.create(plan)
        except PlanValidationError as e:
            self.store.archive_rejected(
                plan, RejectionReason.VALIDATION, detail="; ".join(e.violations)
            )
            logger.warning("Plan %s rejected: %s", plan.id, e)
            raise

    def _build_request(
        self, plan: AnyPlan, client_id: Optional[str]
    ) -> ConfirmationRequest:
        folder = to_platform_path(plan.media_folder_path)
        if isinstance(plan, RenameFilesPlan):
            return ConfirmationRequest(
                event=ASK_FOR_RENAME_FILES_CONFIRMATION,
                client_id=client_id,
                data={
                    "planId": plan.id,
                    "mediaFolderPath": folder,
                    "files": [
                        {
                            "from": to_platform_path(t.source),
                            "to": to_platform_path(t.destination),
                        }
                        for t in plan.files
                    ],
                },
            )
        return ConfirmationRequest(
            event=ASK_FOR_RECOGNIZE_MEDIA_FILES_CONFIRMATION,
            client_id=client_id,
            data={
                "planId": plan.id,
                "mediaFolderPath": folder,
                "files": [
                    {
                        "season": f.season,
                        "episode": f.episode,
                        "path": to_platform_path(f.path),
                    }
                    for f in plan.files
                ],
            },
        )

    def _current(self, plan: AnyPlan) -> Optional[AnyPlan]:
        """Re-read *plan*; None unless it is still waiting for a decision."""
        current = self.store.get(plan.id)
        if current.status is not PlanStatus.PENDING or current.needs_follow_up:
            logger.info(
                "Plan %s was decided elsewhere (%s); keeping that decision",
                plan.id,
                current.status.value,
            )
            return None
        return current

    async def _reject(self, plan: AnyPlan, reason: RejectionReason) -> PlanOutcome:
        # The folder lock orders this after any execution of the same plan.
        async with self._folder_lock(plan.media_folder_path):
            if self._current(plan) is not None:
                self.store.transition(plan.id, PlanStatus.REJECTED, reason)
            return _settled(self.store.get(plan.id))

    async def _execute(self, plan: AnyPlan) -> PlanOutcome:
        async with self._folder_lock(plan.media_folder_path):
            current = self._current(plan)
            if current is None:
                return _settled(self.store.get(plan.id))
            self._executing.add(plan.id)
            try:
                return await self._apply(current)
            finally:
                self._executing.discard(plan.id)

    async def _apply(self, plan: AnyPlan) -> PlanOutcome:
        if isinstance(plan, RecognizeMediaFilePlan):
            if self.recognition_applier is not None:
                applied = self.recognition_applier(plan)
                if inspect.isawaitable(applied):
                    await applied
            self.store.transition(plan.id, PlanStatus.COMPLETED)
            return PlanOutcome(self.store.get(plan.id))

        try:
            results = await self._run_executor(plan.files)
        except Exception as e:
            results = [
                TaskResult(task=task, success=False, error=str(e))
                for task in plan.files
            ]
            self.store.record_execution(plan.id, results)
            raise PartialExecutionError(plan.id, results) from e

        results = _complete_results(plan.files, results)
        self.store.record_execution(plan.id, results)
        if not all(result.success for result in results):
            error = PartialExecutionError(plan.id, results)
            logger.warning("%s", error)
            raise error
        self.store.transition(plan.id, PlanStatus.COMPLETED)
        return PlanOutcome(self.store.get(plan.id), results)

    async def _run_executor(self, tasks: Sequence[RenameTask]) -> List[TaskResult]:
        if inspect.iscoroutinefunction(self.executor):
            return list(await self.executor(tasks))
        results = await asyncio.to_thread(self.executor, tasks)
        if inspect.isawaitable(results):
            results = await results
        return list(results)
