"""Default rename executor.

Applies the tasks of a confirmed RenameFilesPlan in order.
- Every task is attempted, even after an earlier one failed.
- Nothing is rolled back: renames are not transactional across arbitrary paths,
  so the caller gets the exact per-task outcome instead.
- Paths are rendered for the current platform only here, at the boundary.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from mediaplan.core.path_safety import to_platform_path
from mediaplan.fs.operations import move_file
from mediaplan.models.core import RenameTask, TaskResult

logger = logging.getLogger(__name__)


def execute_rename_tasks(
    tasks: Sequence[RenameTask], dry_run: bool = False
) -> List[TaskResult]:
    """Apply rename tasks and report one TaskResult per task, in order.

    Args:
        tasks: The plan's rename tasks.
        dry_run: Check preconditions only, move nothing.

    Returns:
        List[TaskResult]: Results in task order; ``error`` is set on failure.
    """
    results: List[TaskResult] = []
    for task in tasks:
        src = Path(to_platform_path(task.source))
        dst = Path(to_platform_path(task.destination))
        try:
            move_file(src, dst, dry_run=dry_run)
        except OSError as e:
            logger.warning("Rename failed: %s -> %s: %s", src, dst, e)
            results.append(TaskResult(task=task, success=False, error=str(e)))
            continue
        results.append(TaskResult(task=task, success=True))
    return results


__all__ = ["execute_rename_tasks"]
