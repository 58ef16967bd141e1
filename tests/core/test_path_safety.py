"""Tests for mediaplan.core.path_safety.

Covers:
- POSIX/Windows path conversion at the boundary
- Abnormal path detection, including the ``../`` exemption
- Duplicate source/destination detection and its ordering
- Segment-aware, drive-agnostic media folder containment
- The combined admission check used before a plan becomes pending
"""

from typing import List

import pytest

from mediaplan.core.path_safety import (
    InvalidPath,
    canonical_path,
    is_within_folder,
    to_platform_path,
    to_posix_path,
    validate_no_abnormal_paths,
    validate_no_duplicated_dest_file,
    validate_no_duplicated_source_file,
    validate_path_within_media_folder,
    validate_recognized_files,
    validate_rename_tasks,
)
from mediaplan.models.core import RecognizedFile, RenameTask


def _task(source: str, destination: str) -> RenameTask:
    return RenameTask.model_validate({"from": source, "to": destination})


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("/media/Show/ep1.mkv", "/media/Show/ep1.mkv"),
        ("C:\\Media\\Show\\ep1.mkv", "/C:/Media/Show/ep1.mkv"),
        ("c:/Media/Show", "/C:/Media/Show"),
        ("/d:/Media", "/D:/Media"),
        ("C:", "/C:"),
        ("relative\\file.mkv", "relative/file.mkv"),
    ],
)
def test_to_posix_path(raw: str, expected: str) -> None:
    assert to_posix_path(raw) == expected


def test_to_posix_path_keeps_dot_segments() -> None:
    assert to_posix_path("C:\\Media\\..\\x.mkv") == "/C:/Media/../x.mkv"


def test_to_platform_path_windows() -> None:
    assert to_platform_path("/C:/Media/Show/a.mkv", windows=True) == "C:\\Media\\Show\\a.mkv"
    assert to_platform_path("/media/a.mkv", windows=True) == "\\media\\a.mkv"


def test_to_platform_path_posix_unchanged() -> None:
    assert to_platform_path("/C:/Media/a.mkv", windows=False) == "/C:/Media/a.mkv"


def test_canonical_path_strips_drive_and_collapses() -> None:
    assert canonical_path("C:\\Media\\Show\\..\\Other") == "/Media/Other"
    assert canonical_path("/media/Show/") == "/media/Show"
    assert canonical_path("relative/path") is None


def test_abnormal_paths_flagged_in_order() -> None:
    tasks = [
        _task("/media/Show/./a.mkv", "/media/Show/a2.mkv"),
        _task("/media/Show/b.mkv", "/media/Show/../b2.mkv"),
        _task("/media/Show/c.mkv", "/media/Show/."),
    ]
    assert validate_no_abnormal_paths(tasks) == [
        'Source path "/media/Show/./a.mkv" is abnormal',
        'Destination path "/media/Show/../b2.mkv" is abnormal',
        'Destination path "/media/Show/." is abnormal',
    ]


@pytest.mark.parametrize(
    "path",
    ["/media//Show/a.mkv", "C:\\Media\\..\\x.mkv", "", "/media/Show/.."],
)
def test_other_abnormal_forms(path: str) -> None:
    assert validate_no_abnormal_paths([_task(path, "/media/Show/ok.mkv")])


def test_normal_paths_pass() -> None:
    tasks = [
        _task("/media/Show/ep1.avi", "/media/Show/Season 01/Show - S01E01.mp4"),
        _task("C:\\Media\\Show\\ep2.avi", "C:\\Media\\Show\\Season 01\\ep2.mkv"),
        _task("/media/Show/dir/", "/media/Show/dir2/"),
    ]
    assert validate_no_abnormal_paths(tasks) == []


def test_leading_parent_segment_exempt() -> None:
    assert validate_no_abnormal_paths([_task("../Show/a.mkv", "../Show/b.mkv")]) == []


def test_scenario_d_parent_escape_is_abnormal() -> None:
    task = _task("/media/Show/ep1.avi", "/media/Show/../../etc/passwd")
    assert validate_no_abnormal_paths([task]) == [
        'Destination path "/media/Show/../../etc/passwd" is abnormal'
    ]
    violations = validate_rename_tasks("/media/Show", [task])
    assert violations[0] == 'Destination path "/media/Show/../../etc/passwd" is abnormal'


def test_duplicate_destination_scenario_b() -> None:
    tasks = [
        _task("/media/Show/a.mp4", "/media/Show/x.mp4"),
        _task("/media/Show/b.mp4", "/media/Show/x.mp4"),
    ]
    result = validate_no_duplicated_dest_file(tasks)
    assert result.is_valid is False
    assert result.duplicates == ["/media/Show/x.mp4"]
    assert validate_no_duplicated_source_file(tasks).is_valid is True


def test_duplicates_listed_once_in_first_seen_order() -> None:
    tasks = [
        _task("/m/b.mkv", "/m/1.mkv"),
        _task("/m/a.mkv", "/m/2.mkv"),
        _task("/m/b.mkv", "/m/3.mkv"),
        _task("/m/a.mkv", "/m/4.mkv"),
        _task("/m/b.mkv", "/m/5.mkv"),
    ]
    result = validate_no_duplicated_source_file(tasks)
    assert result.duplicates == ["/m/b.mkv", "/m/a.mkv"]


@pytest.mark.parametrize(
    "destinations, expected",
    [
        (["/m/1", "/m/2", "/m/3"], []),
        (["/m/1", "/m/1", "/m/1"], ["/m/1"]),
        (["/m/1", "/m/2", "/m/2", "/m/1"], ["/m/1", "/m/2"]),
    ],
)
def test_duplicate_dest_is_exactly_repeated_values(
    destinations: List[str], expected: List[str]
) -> None:
    tasks = [_task(f"/m/src{i}", d) for i, d in enumerate(destinations)]
    result = validate_no_duplicated_dest_file(tasks)
    assert result.duplicates == expected
    assert result.is_valid is (not expected)


def test_source_outside_folder_reported() -> None:
    task = _task("/other/ep1.avi", "/media/Show/ep1.avi")
    result = validate_path_within_media_folder("/media/Show", [task])
    assert result.is_valid is False
    assert result.invalid_paths == [InvalidPath(path="/other/ep1.avi", type="source")]


def test_containment_is_segment_aware() -> None:
    task = _task("/media/Show2/a.mkv", "/media/Show/a.mkv")
    result = validate_path_within_media_folder("/media/Show", [task])
    assert [p.path for p in result.invalid_paths] == ["/media/Show2/a.mkv"]


def test_folder_itself_is_not_inside() -> None:
    assert is_within_folder("/media/Show", "/media/Show") is False
    assert is_within_folder("/media/Show/", "/media/Show/a.mkv") is True


def test_containment_ignores_drive_case_and_separators() -> None:
    task = _task("c:\\Media\\Show\\a.mkv", "C:/Media/Show/Season 01/a.mkv")
    result = validate_path_within_media_folder("C:\\Media\\Show", [task])
    assert result.is_valid is True


def test_relative_paths_are_never_inside() -> None:
    task = _task("../Show/a.mkv", "/media/Show/a.mkv")
    result = validate_path_within_media_folder("/media/Show", [task])
    assert result.invalid_paths == [InvalidPath(path="../Show/a.mkv", type="source")]


def test_scenario_a_valid_plan_has_no_violations() -> None:
    task = _task("/media/Show/ep1.avi", "/media/Show/Season 01/Show - S01E01.mp4")
    assert validate_rename_tasks("/media/Show", [task]) == []


def test_validate_rename_tasks_runs_checks_in_order() -> None:
    tasks = [
        _task("/media/Show/a.mkv", "/media/Show/x.mkv"),
        _task("/media/Show/a.mkv", "/media/Show/x.mkv"),
        _task("/media/Show/./c.mkv", "/elsewhere/c.mkv"),
    ]
    violations = validate_rename_tasks("/media/Show", tasks)
    assert violations == [
        'Source path "/media/Show/./c.mkv" is abnormal',
        'Source path "/media/Show/a.mkv" is used by more than one task',
        'Destination path "/media/Show/x.mkv" is used by more than one task',
        'Destination path "/elsewhere/c.mkv" is outside the media folder "/media/Show"',
    ]


def test_validate_recognized_files() -> None:
    files = [
        RecognizedFile(season=1, episode=1, path="/media/Show/a.mkv"),
        RecognizedFile(season=1, episode=2, path="/media/Other/b.mkv"),
        RecognizedFile(season=1, episode=3, path="/media/Show/../c.mkv"),
    ]
    assert validate_recognized_files("/media/Show", files) == [
        'Path "/media/Other/b.mkv" is outside the media folder "/media/Show"',
        'Path "/media/Show/../c.mkv" is abnormal',
    ]


@pytest.mark.parametrize("folder", ["/media/Show/../..", "/media/./Show", "C:\\Media\\.."])
def test_abnormal_media_folder_is_refused(folder: str) -> None:
    task = _task("/etc/passwd", "/etc/shadow")
    recognized = RecognizedFile(season=1, episode=1, path="/etc/passwd")

    assert validate_rename_tasks(folder, [task])[0] == (
        f'Media folder path "{folder}" is abnormal'
    )
    assert validate_recognized_files(folder, [recognized])[0] == (
        f'Media folder path "{folder}" is abnormal'
    )


def test_media_folder_with_trailing_slash_is_normal() -> None:
    task = _task("/media/Show/a.mkv", "/media/Show/b.mkv")
    assert validate_rename_tasks("/media/Show/", [task]) == []
