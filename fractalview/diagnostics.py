"""Verbose diagnostics shared by the library and the command line."""

from __future__ import annotations

import os
import sys

_VERBOSE_VALUES = {"1", "true", "yes", "on"}

VERBOSE = os.environ.get("FRACTALVIEW_VERBOSE", "").strip().lower() in _VERBOSE_VALUES


def set_verbose(enabled: bool) -> None:
    global VERBOSE
    VERBOSE = bool(enabled)


def log(message, *args, **kwargs):
    if VERBOSE:
        kwargs.setdefault("file", sys.stderr)
        print(message, *args, **kwargs)
