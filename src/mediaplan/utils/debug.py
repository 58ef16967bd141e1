"""Logging setup for mediaplan.

Modules log through ``logging.getLogger(__name__)``; this attaches a single
handler to the ``mediaplan`` logger. Debug output is controlled by the
MEDIAPLAN_DEBUG environment variable.
"""

import logging
import os
from typing import Optional

DEBUG_ON = os.getenv("MEDIAPLAN_DEBUG", "0") == "1"

_logger: Optional[logging.Logger] = None


def setup_logger(verbose: bool = False) -> logging.Logger:
    """Configure and return the package logger.

    Args:
        verbose: Force DEBUG level even when MEDIAPLAN_DEBUG is unset.
    """
    global _logger
    if _logger is None:
        logger = logging.getLogger("mediaplan")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("[%(levelname)s] %(asctime)s %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.DEBUG if DEBUG_ON else logging.INFO)
        _logger = logger
    if verbose:
        _logger.setLevel(logging.DEBUG)
    return _logger
