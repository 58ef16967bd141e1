"""Filesystem operations for mediaplan."""

from mediaplan.fs.operations import move_file

__all__ = ["move_file"]
