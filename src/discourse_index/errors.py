"""Error taxonomy.

Failures affecting a single entity (one document, one formula) are contained at
that granularity by the caller; only ``StoreError`` is meant to reach the top.
"""

from __future__ import annotations


class DiscourseIndexError(Exception):
    """Base class for all errors raised by this package."""


class StoreError(DiscourseIndexError):
    """I/O or connection failure on the backing store."""


class ScanError(DiscourseIndexError):
    """A single document could not be scanned."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class RegistryError(DiscourseIndexError):
    """Invalid type registry configuration."""


class FormulaError(DiscourseIndexError):
    pass


class FormulaParseError(FormulaError):
    def __init__(self, message: str, *, source: str = "", position: int | None = None):
        where = f" at {position}" if position is not None else ""
        super().__init__(f"{message}{where} in {source!r}" if source else message)
        self.source = source
        self.position = position


class FormulaEvalError(FormulaError):
    pass
