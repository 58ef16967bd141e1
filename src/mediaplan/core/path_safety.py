"""Path safety checks for rename plans.

Pure functions over path strings: no filesystem access, no state. A rename plan
is only admitted when all of these pass, run in this order:

1. validate_no_abnormal_paths: no ``.``/``..`` segments or other forms that
   normalize to something different from what was written.
2. validate_no_duplicated_source_file: no file is renamed twice.
3. validate_no_duplicated_dest_file: no two files are renamed onto the same path.
4. validate_path_within_media_folder: every source and destination lives under
   the media folder.

Containment is decided on a canonical form (POSIX separators, drive letter
stripped, ``.``/``..`` collapsed), never on the raw string, so textually
different spellings of the same path compare equal.
"""

import os
import posixpath
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Literal, Optional, Sequence

if TYPE_CHECKING:
    from mediaplan.models.core import RecognizedFile, RenameTask

PathType = Literal["source", "destination"]

# "C:", "C:/..." or the already-converted "/C:/..."
_WIN_DRIVE_RE = re.compile(r"^/?([A-Za-z]):(?=/|$)")
_POSIX_DRIVE_RE = re.compile(r"^/([A-Za-z]):(?=/|$)")


@dataclass(frozen=True)
class DuplicateCheck:
    """Result of a duplicate source/destination check."""

    is_valid: bool
    duplicates: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class InvalidPath:
    """A task path found outside the media folder."""

    path: str
    type: PathType


@dataclass(frozen=True)
class ContainmentCheck:
    """Result of validate_path_within_media_folder."""

    is_valid: bool
    invalid_paths: List[InvalidPath] = field(default_factory=list)


def to_posix_path(path: str) -> str:
    """Convert a POSIX or Windows path to the internal POSIX form.

    Backslashes become ``/`` and a drive ``c:\\x`` becomes ``/C:/x``. Nothing
    else is rewritten: ``.``/``..`` segments and repeated slashes survive so the
    abnormal-path check can still flag them.

    Example:
        >>> to_posix_path("C:\\\\Media\\\\Show\\\\ep1.mkv")
        '/C:/Media/Show/ep1.mkv'
    """
    posix = path.replace("\\", "/")
    match = _WIN_DRIVE_RE.match(posix)
    if match:
        posix = f"/{match.group(1).upper()}:{posix[match.end():]}"
    return posix


def to_platform_path(path: str, windows: Optional[bool] = None) -> str:
    """Render an internal POSIX path for the current platform.

    Args:
        path: Path in the internal POSIX form.
        windows: Force Windows rendering on/off. Defaults to ``os.name == "nt"``.
    """
    if windows is None:
        windows = os.name == "nt"
    if not windows:
        return path
    match = _POSIX_DRIVE_RE.match(path)
    if match:
        path = f"{match.group(1)}:{path[match.end():] or '/'}"
    return path.replace("/", "\\")


def canonical_path(path: str) -> Optional[str]:
    """Return the drive-agnostic, normalized absolute POSIX form of *path*.

    Returns None for relative paths, which can never be proven to be inside a
    media folder.
    """
    posix = to_posix_path(path)
    match = _WIN_DRIVE_RE.match(posix)
    if match:
        posix = posix[match.end():] or "/"
    elif posix.startswith("//"):
        # UNC: keep the server as the first segment.
        posix = "/" + posix.lstrip("/")
    if not posix.startswith("/"):
        return None
    normalized = posixpath.normpath(posix)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def is_within_folder(media_folder_path: str, path: str) -> bool:
    """Whether *path* lies strictly beneath *media_folder_path*.

    The comparison is segment-aware: ``/media/Show2/a.mkv`` is not inside
    ``/media/Show``, and the folder itself is not a file inside it.
    """
    folder = canonical_path(media_folder_path)
    target = canonical_path(path)
    if folder is None or target is None:
        return False
    prefix = folder if folder.endswith("/") else folder + "/"
    return target != folder and target.startswith(prefix)


def _is_abnormal(path: str) -> bool:
    # Deliberately relative inputs are resolved by the filesystem layer.
    if path.startswith("../"):
        return False
    posix = path.replace("\\", "/")
    if any(segment in (".", "..") for segment in posix.split("/")):
        return True
    trimmed = posix.rstrip("/") or posix
    return posixpath.normpath(trimmed) != trimmed


def validate_no_abnormal_paths(tasks: Sequence["RenameTask"]) -> List[str]:
    """Flag every source/destination whose literal form is not normalized.

    This check must run before any other, because the remaining checks
    compare paths and a ``..`` segment can make two different strings name the
    same file.

    Args:
        tasks: Rename tasks to check.

    Returns:
        One message per abnormal path, in task order. Empty when all pass.
    """
    errors: List[str] = []
    for task in tasks:
        if task is None:
            continue
        if _is_abnormal(task.source):
            errors.append(f'Source path "{task.source}" is abnormal')
        if _is_abnormal(task.destination):
            errors.append(f'Destination path "{task.destination}" is abnormal')
    return errors


def _find_duplicates(paths: Iterable[str]) -> List[str]:
    counts: Dict[str, int] = {}
    for path in paths:
        counts[path] = counts.get(path, 0) + 1
    return [path for path, count in counts.items() if count > 1]


def validate_no_duplicated_source_file(tasks: Sequence["RenameTask"]) -> DuplicateCheck:
    """Check that no two tasks rename the same source file.

    Returns:
        DuplicateCheck listing every source shared by two or more tasks, in
        order of first appearance.
    """
    duplicates = _find_duplicates(t.source for t in tasks if t is not None)
    return DuplicateCheck(is_valid=not duplicates, duplicates=duplicates)


def validate_no_duplicated_dest_file(tasks: Sequence["RenameTask"]) -> DuplicateCheck:
    """Check that no two tasks write the same destination path.

    Returns:
        DuplicateCheck listing every destination shared by two or more tasks,
        in order of first appearance.
    """
    duplicates = _find_duplicates(t.destination for t in tasks if t is not None)
    return DuplicateCheck(is_valid=not duplicates, duplicates=duplicates)


def validate_path_within_media_folder(
    media_folder_path: str, tasks: Sequence["RenameTask"]
) -> ContainmentCheck:
    """Check that every source and destination lives under the media folder.

    Args:
        media_folder_path: The managed media folder, POSIX or Windows form.
        tasks: Rename tasks to check.

    Returns:
        ContainmentCheck listing offending paths with their role, in task order.
    """
    invalid: List[InvalidPath] = []
    for task in tasks:
        if task is None:
            continue
        if not is_within_folder(media_folder_path, task.source):
            invalid.append(InvalidPath(path=task.source, type="source"))
        if not is_within_folder(media_folder_path, task.destination):
            invalid.append(InvalidPath(path=task.destination, type="destination"))
    return ContainmentCheck(is_valid=not invalid, invalid_paths=invalid)


def _check_media_folder(media_folder_path: str) -> List[str]:
    # A folder like "/media/Show/../.." collapses to "/" and would contain everything.
    if _is_abnormal(media_folder_path):
        return [f'Media folder path "{media_folder_path}" is abnormal']
    return []


def validate_rename_tasks(
    media_folder_path: str, tasks: Sequence["RenameTask"]
) -> List[str]:
    """Run every admission check for a rename plan, in the required order.

    Returns:
        Human-readable violations; empty when the task set may be admitted.
    """
    violations = _check_media_folder(media_folder_path)
    violations.extend(validate_no_abnormal_paths(tasks))

    sources = validate_no_duplicated_source_file(tasks)
    violations.extend(
        f'Source path "{path}" is used by more than one task'
        for path in sources.duplicates
    )

    destinations = validate_no_duplicated_dest_file(tasks)
    violations.extend(
        f'Destination path "{path}" is used by more than one task'
        for path in destinations.duplicates
    )

    containment = validate_path_within_media_folder(media_folder_path, tasks)
    violations.extend(
        f'{invalid.type.capitalize()} path "{invalid.path}" is outside the '
        f'media folder "{media_folder_path}"'
        for invalid in containment.invalid_paths
    )
    return violations


def validate_recognized_files(
    media_folder_path: str, files: Sequence["RecognizedFile"]
) -> List[str]:
    """Admission checks for a recognition plan: normal paths inside the folder."""
    violations = _check_media_folder(media_folder_path)
    for recognized in files:
        if _is_abnormal(recognized.path):
            violations.append(f'Path "{recognized.path}" is abnormal')
        elif not is_within_folder(media_folder_path, recognized.path):
            violations.append(
                f'Path "{recognized.path}" is outside the media folder '
                f'"{media_folder_path}"'
            )
    return violations
