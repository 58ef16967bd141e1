"""Tests for the plan store.

This test suite covers:
- Admission: validation failures never reach ``pending``
- Round-trip of plans, task order and execution results
- Status transitions, including idempotent repeats and forbidden moves
- Listing with filters, and resilience to unreadable plan files
- The on-disk format (camelCase JSON plan, YAML audit trail)
"""

import json
import logging
from pathlib import Path
from typing import Callable, List

import pytest
import yaml

from mediaplan.errors import InvalidTransitionError, PlanNotFoundError, PlanValidationError
from mediaplan.models.core import (
    PlanStatus,
    RecognizedFile,
    RejectionReason,
    RenameTask,
    TaskResult,
)
from mediaplan.models.plan import RecognizeMediaFilePlan, RenameFilesPlan
from mediaplan.utils.plan_store import PlanStore

MakeTasks = Callable[[Path, List[str]], List[RenameTask]]


def _plan(folder: Path, tasks: List[RenameTask]) -> RenameFilesPlan:
    return RenameFilesPlan(media_folder_path=str(folder), files=tasks)


def test_create_and_get_round_trip(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    tasks = make_tasks(media_folder, ["ep2.avi", "ep1.avi", "ep3.avi"])
    plan_id = store.create(_plan(media_folder, tasks))

    loaded = store.get(plan_id)
    assert isinstance(loaded, RenameFilesPlan)
    assert loaded.status is PlanStatus.PENDING
    assert loaded.files == tasks
    assert loaded.media_folder_path == str(media_folder)


def test_create_rejects_invalid_plan(store: PlanStore) -> None:
    plan = RenameFilesPlan(
        media_folder_path="/media/Show",
        files=[
            RenameTask(source="/media/Show/a.mp4", destination="/media/Show/x.mp4"),
            RenameTask(source="/media/Show/b.mp4", destination="/media/Show/x.mp4"),
        ],
    )
    with pytest.raises(PlanValidationError) as exc_info:
        store.create(plan)

    assert exc_info.value.violations == [
        'Destination path "/media/Show/x.mp4" is used by more than one task'
    ]
    assert exc_info.value.plan_id == plan.id
    assert store.list_plans() == []


def test_create_refuses_existing_id(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan = _plan(media_folder, make_tasks(media_folder, ["ep1.avi"]))
    store.create(plan)
    with pytest.raises(FileExistsError):
        store.create(plan)


def test_create_forces_pending(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan = _plan(media_folder, make_tasks(media_folder, ["ep1.avi"])).model_copy(
        update={"status": PlanStatus.COMPLETED}
    )
    plan_id = store.create(plan)
    assert store.get(plan_id).status is PlanStatus.PENDING


def test_get_unknown_plan(store: PlanStore) -> None:
    with pytest.raises(PlanNotFoundError):
        store.get("does-not-exist")
    with pytest.raises(PlanNotFoundError):
        store.get("../../etc/passwd")


def test_transition_to_rejected_is_idempotent(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))

    assert store.transition(plan_id, PlanStatus.REJECTED) is True
    assert store.transition(plan_id, PlanStatus.REJECTED) is False

    plan = store.get(plan_id)
    assert plan.status is PlanStatus.REJECTED
    assert plan.reason is RejectionReason.MANUAL
    # Only one rejection is recorded.
    statuses = [event.status for event in store.history(plan_id)]
    assert statuses == [PlanStatus.PENDING, PlanStatus.REJECTED]


def test_transition_keeps_reason(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    store.transition(plan_id, PlanStatus.REJECTED, RejectionReason.TIMEOUT)
    assert store.get(plan_id).reason is RejectionReason.TIMEOUT


def test_terminal_states_are_final(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    store.transition(plan_id, PlanStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        store.transition(plan_id, PlanStatus.REJECTED)
    with pytest.raises(InvalidTransitionError):
        store.transition(plan_id, PlanStatus.PENDING)
    assert store.get(plan_id).status is PlanStatus.COMPLETED
    assert store.get(plan_id).reason is None


def test_transition_to_pending_rejected(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    with pytest.raises(InvalidTransitionError):
        store.transition(plan_id, PlanStatus.PENDING)


def test_transition_unknown_plan(store: PlanStore) -> None:
    with pytest.raises(PlanNotFoundError):
        store.transition("missing", PlanStatus.REJECTED)


def test_archive_rejected(store: PlanStore) -> None:
    plan = RenameFilesPlan(
        media_folder_path="/media/Show",
        files=[RenameTask(source="/media/Show/a.mkv", destination="/etc/passwd")],
    )
    archived = store.archive_rejected(plan, detail="outside")

    loaded = store.get(plan.id)
    assert loaded.status is PlanStatus.REJECTED
    assert loaded.reason is RejectionReason.VALIDATION
    assert archived == loaded
    assert store.history(plan.id)[-1].detail == "outside"


def test_record_execution_marks_follow_up(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi", "ep2.avi"])
    plan_id = store.create(_plan(media_folder, tasks))
    results = [
        TaskResult(task=tasks[0], success=True),
        TaskResult(task=tasks[1], success=False, error="boom"),
    ]

    updated = store.record_execution(plan_id, results)

    assert updated.needs_follow_up is True
    loaded = store.get(plan_id)
    assert loaded.status is PlanStatus.PENDING
    assert loaded.execution_results == results
    assert loaded.needs_follow_up is True


def test_record_execution_requires_pending(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    store.transition(plan_id, PlanStatus.REJECTED)
    with pytest.raises(InvalidTransitionError):
        store.record_execution(plan_id, [])


def test_list_plans_filters(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    first = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    second = store.create(_plan(media_folder, make_tasks(media_folder, ["ep2.avi"])))
    recognized = store.create(
        RecognizeMediaFilePlan(
            media_folder_path=str(media_folder),
            files=[RecognizedFile(season=1, episode=3, path=str(media_folder / "ep3.avi"))],
        )
    )
    store.transition(first, PlanStatus.COMPLETED)

    assert [p.id for p in store.list_plans()] == [first, second, recognized]
    assert [p.id for p in store.list_plans(status=PlanStatus.PENDING)] == [second, recognized]
    assert [p.id for p in store.list_plans(task="recognize-media-file")] == [recognized]
    assert [
        p.id
        for p in store.list_plans(status=PlanStatus.PENDING, task="rename-files")
    ] == [second]


def test_list_plans_skips_unreadable_files(
    store: PlanStore,
    media_folder: Path,
    make_tasks: MakeTasks,
    caplog: pytest.LogCaptureFixture,
) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    (store.plans_dir / "broken.plan.json").write_text("{not json", encoding="utf-8")
    (store.plans_dir / "wrong.plan.json").write_text('{"task": "nope"}', encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        plans = store.list_plans()

    assert [p.id for p in plans] == [plan_id]
    assert "broken.plan.json" in caplog.text


def test_recognize_plan_outside_folder_rejected(store: PlanStore) -> None:
    plan = RecognizeMediaFilePlan(
        media_folder_path="/media/Show",
        files=[RecognizedFile(season=1, episode=1, path="/media/Other/a.mkv")],
    )
    with pytest.raises(PlanValidationError):
        store.create(plan)


def test_on_disk_format(
    store: PlanStore, media_folder: Path, make_tasks: MakeTasks
) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi"])
    plan_id = store.create(_plan(media_folder, tasks))
    store.transition(plan_id, PlanStatus.REJECTED, RejectionReason.USER_REJECTED)

    data = json.loads((store.plans_dir / f"{plan_id}.plan.json").read_text())
    assert data["task"] == "rename-files"
    assert data["status"] == "rejected"
    assert data["reason"] == "user_rejected"
    assert data["mediaFolderPath"] == str(media_folder)
    assert data["files"][0] == {"from": tasks[0].source, "to": tasks[0].destination}

    meta = yaml.safe_load((store.plans_dir / f"{plan_id}.meta.yaml").read_text())
    assert meta["id"] == plan_id
    assert [event["status"] for event in meta["history"]] == ["pending", "rejected"]
    assert meta["history"][1]["reason"] == "user_rejected"
    assert not list(store.plans_dir.glob("*.tmp"))


def test_summary(store: PlanStore, media_folder: Path, make_tasks: MakeTasks) -> None:
    plan_id = store.create(_plan(media_folder, make_tasks(media_folder, ["ep1.avi"])))
    store.create(_plan(media_folder, make_tasks(media_folder, ["ep2.avi"])))
    store.transition(plan_id, PlanStatus.COMPLETED)
    assert store.summary() == {"pending": 1, "completed": 1, "rejected": 0}


def test_from_config_uses_plans_dir_setting(tmp_path: Path) -> None:
    store = PlanStore.from_config()
    assert store.plans_dir == tmp_path / "plans"
    assert store.plans_dir.is_dir()
