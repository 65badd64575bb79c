from __future__ import annotations


class RedFlagsError(Exception):
    """Base class for errors raised by the screening engine."""


class UnknownIndicatorError(RedFlagsError, ValueError):
    """An indicator id was requested that the registry does not know."""

    def __init__(self, unknown):
        self.unknown = sorted(unknown)
        super().__init__(f"Unknown indicator id(s): {', '.join(self.unknown)}")


class EngineStateError(RedFlagsError, RuntimeError):
    """The engine was driven out of order (e.g. finalized twice)."""


class InvalidRecordError(RedFlagsError, ValueError):
    """An input record lacks a field every stage depends on."""
