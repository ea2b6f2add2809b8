"""Smart scan: decide which documents need a full re-scan.

1. A document tracked with at least one node is always re-scanned; its
   relations may have changed even if the node count did not.
2. An untracked document, or one whose mtime moved since it was last seen, is
   probed: only the first `budget` bytes are read and searched for the type
   marker.
3. Anything else is skipped.

The probe can miss a marker that sits beyond the byte budget in a large,
untracked document. Such nodes stay unindexed until the document is tracked
(e.g. by a full rebuild). Raise the budget to trade speed for recall.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from ..graph.store import SQLiteGraphStore

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], bool]


def prefix_probe(marker: str, budget: int) -> ProbeFn:
    """Probe reading at most `budget` bytes, matching `marker` case-insensitively."""
    needle = marker.lower().encode("utf-8")

    def probe(path: str) -> bool:
        with open(path, "rb") as f:
            head = f.read(budget)
        return needle in head.lower()

    return probe


def _exists(path: str) -> bool:
    # a path that cannot be stat-ed is kept, only a missing one has vanished
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError:
        return True
    return True


class ScanReason(str, Enum):
    TRACKED = "tracked"
    PROBE_HIT = "probe-hit"
    PROBE_MISS = "probe-miss"
    UNCHANGED = "unchanged"
    MISSING = "missing"
    UNREADABLE = "unreadable"


@dataclass(frozen=True, slots=True)
class ScanDecision:
    path: str
    scan: bool
    reason: ScanReason
    modified_at: float | None = None


@dataclass(slots=True)
class ScanPlan:
    decisions: list[ScanDecision] = field(default_factory=list)

    @property
    def to_scan(self) -> list[str]:
        return [d.path for d in self.decisions if d.scan]

    @property
    def skipped(self) -> list[str]:
        return [d.path for d in self.decisions if not d.scan]


class ChangeDetector:
    """Holds the mtimes of documents that probed negative during its lifetime."""

    def __init__(self, store: SQLiteGraphStore, probe: ProbeFn):
        self.store = store
        self.probe = probe
        self._seen_empty: dict[str, float] = {}

    def remember_empty(self, path: str, modified_at: float) -> None:
        """Record that `path` at `modified_at` holds no nodes."""
        self._seen_empty[path] = modified_at

    def decide(self, path: str, *, probe: ProbeFn | None = None) -> ScanDecision:
        try:
            mtime = os.stat(path).st_mtime
        except (FileNotFoundError, NotADirectoryError):
            return ScanDecision(path, False, ScanReason.MISSING)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", path, e)
            return ScanDecision(path, False, ScanReason.UNREADABLE)

        record = self.store.get_document(path)
        if record is not None and record.node_count >= 1:
            return ScanDecision(path, True, ScanReason.TRACKED, mtime)

        last = record.modified_at if record is not None else self._seen_empty.get(path)
        if last is not None and last == mtime:
            return ScanDecision(path, False, ScanReason.UNCHANGED, mtime)

        try:
            hit = (probe or self.probe)(path)
        except OSError as e:
            logger.warning("Probe failed for %s: %s", path, e)
            return ScanDecision(path, False, ScanReason.PROBE_MISS, mtime)
        if hit:
            self._seen_empty.pop(path, None)
            return ScanDecision(path, True, ScanReason.PROBE_HIT, mtime)
        self._seen_empty[path] = mtime
        return ScanDecision(path, False, ScanReason.PROBE_MISS, mtime)

    def plan(self, paths: Iterable[str], *, probe: ProbeFn | None = None) -> ScanPlan:
        plan = ScanPlan()
        for path in paths:
            decision = self.decide(path, probe=probe)
            logger.debug("%s: %s", path, decision.reason.value)
            plan.decisions.append(decision)
        return plan

    def vanished_documents(self, exists: Callable[[str], bool] | None = None) -> list[str]:
        """Tracked documents, or node backing files, that are gone from disk."""
        exists = exists or _exists
        paths = {r.path for r in self.store.list_documents()} | self.store.node_files()
        return sorted(p for p in paths if not exists(p))
