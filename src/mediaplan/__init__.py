# SPDX-FileCopyrightText: 2025-present DouglasMacKrell <d.mackrell@gmail.com>
#
# SPDX-License-Identifier: MIT

"""mediaplan - Media Rename Planning & Confirmation Engine."""

from mediaplan.__about__ import __version__

__all__ = ["__version__"]
