# File: utils/__init__.py
"""Pure Python utilities for taskcadence.

Submodules:
    - dt_utils: Date/time parsing, timezone handling, RFC 5545 date-time values

Usage:
    from . import dt_utils
    from .utils.dt_utils import as_utc, dt_parse
"""

from . import dt_utils

__all__ = ["dt_utils"]
