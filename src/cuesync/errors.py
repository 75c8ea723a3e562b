# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""Cuesync error types."""


class CuesyncError(Exception):
    """Base error for all cuesync failures."""


class RecognitionUnavailable(CuesyncError):
    """The speech source could not start listening."""


class InvalidScriptState(CuesyncError):
    """A query was made against an empty or unindexed script."""
