"""Filesystem move operation used by the rename executor.

Moves one file to a new path inside a media folder. Parent directories of the
destination are created on demand, cross-device moves fall back to
copy-and-delete, and Windows long paths get the ``\\\\?\\`` prefix. An existing
destination is never overwritten.
"""

import errno
import logging
import shutil
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

WIN_MAX_PATH = 259  # Windows MAX_PATH limit for NTFS long paths


def get_win_long_path_prefix() -> str:
    """Return the Windows NTFS long path prefix."""
    bslash = chr(92)
    return bslash + bslash + "?" + bslash


def _win_long_path(path: Path) -> str:
    s = str(path)
    prefix = get_win_long_path_prefix()
    if sys.platform == "win32" and len(s) > WIN_MAX_PATH and not s.startswith(prefix):
        return prefix + s
    return s


def move_file(src: Path, dst: Path, *, dry_run: bool = False) -> None:
    """Move *src* to *dst*, creating missing parent directories.

    Args:
        src: Existing file to move.
        dst: New path; must not exist yet.
        dry_run: If True, only check preconditions and log the intended move.

    Raises:
        FileNotFoundError: If src is missing.
        FileExistsError: If dst already exists.
        OSError: For non-recoverable filesystem errors.

    Example:
        >>> from pathlib import Path
        >>> src = Path('a.mkv')
        >>> src.write_text('x')
        >>> move_file(src, Path('Season 01/a.mkv'))
    """
    if not src.exists():
        raise FileNotFoundError(f"Source {src} does not exist.")
    if dst.exists():
        raise FileExistsError(f"Destination {dst} already exists.")
    if dry_run:
        logger.info("[dry run] Would move %s -> %s", src, dst)
        return
    dst.parent.mkdir(parents=True, exist_ok=True)
    src_path = _win_long_path(src)
    dst_path = _win_long_path(dst)
    try:
        Path(src_path).rename(dst_path)
    except OSError as e:
        if e.errno == errno.EXDEV:
            shutil.copy2(src_path, dst_path)
            Path(src_path).unlink()
        else:
            raise
    logger.debug("Moved %s -> %s", src, dst)
