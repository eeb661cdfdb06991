"""Exception types for habit-xp.

Expected outcomes (verification rejections, time blocks, exhausted daily caps)
are reported as result data, not raised. Only programmer errors and storage
failures use exceptions.
"""

from __future__ import annotations


class HabitXpError(Exception):
    """Base class for habit-xp errors."""


class InvalidArgumentError(HabitXpError, ValueError):
    """A required field is missing, negative, or of the wrong type."""


class StorageUnavailableError(HabitXpError):
    """The ledger or activity store could not be read or written."""
