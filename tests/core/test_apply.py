"""Tests for the default rename executor."""

from pathlib import Path
from typing import Callable, List

from mediaplan.core.apply import execute_rename_tasks
from mediaplan.models.core import RenameTask

MakeTasks = Callable[[Path, List[str]], List[RenameTask]]


def test_all_tasks_applied_in_order(media_folder: Path, make_tasks: MakeTasks) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi", "ep2.avi"])

    results = execute_rename_tasks(tasks)

    assert [r.task for r in results] == tasks
    assert all(r.success and r.error is None for r in results)
    assert (media_folder / "Season 01" / "ep1 renamed.mkv").read_text() == "ep1.avi"
    assert not (media_folder / "ep1.avi").exists()


def test_failure_does_not_stop_or_roll_back(
    media_folder: Path, make_tasks: MakeTasks
) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi", "missing.avi", "ep3.avi"])

    results = execute_rename_tasks(tasks)

    assert [r.success for r in results] == [True, False, True]
    assert "does not exist" in results[1].error
    # The first rename stays applied.
    assert (media_folder / "Season 01" / "ep1 renamed.mkv").exists()
    assert (media_folder / "Season 01" / "ep3 renamed.mkv").exists()


def test_existing_destination_fails_only_that_task(
    media_folder: Path, make_tasks: MakeTasks
) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi", "ep2.avi"])
    (media_folder / "Season 01").mkdir()
    (media_folder / "Season 01" / "ep2 renamed.mkv").write_text("taken")

    results = execute_rename_tasks(tasks)

    assert [r.success for r in results] == [True, False]
    assert (media_folder / "ep2.avi").exists()
    assert (media_folder / "Season 01" / "ep2 renamed.mkv").read_text() == "taken"


def test_dry_run_moves_nothing(media_folder: Path, make_tasks: MakeTasks) -> None:
    tasks = make_tasks(media_folder, ["ep1.avi"])

    results = execute_rename_tasks(tasks, dry_run=True)

    assert results[0].success is True
    assert (media_folder / "ep1.avi").exists()
    assert not (media_folder / "Season 01").exists()
