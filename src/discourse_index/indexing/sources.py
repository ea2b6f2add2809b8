"""Document collection and the reference org-mode scanner.

The index only relies on the `DocumentCollector` and `Scanner` shapes; the
implementations here cover plain org files with property drawers:

    * Claim title
    :PROPERTIES:
    :ID:       c1
    :TYPE:     claim
    :END:

    * Measurement
    :PROPERTIES:
    :ID:       e1
    :TYPE:     evidence
    :SUPPORTS: c1 [[id:c2][other claim]]
    :SUPPORTS_NOTE: replicated twice
    :END:

A drawer before the first heading describes the whole document (a container
node titled from ``#+title:``).
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..errors import ScanError
from ..graph.models import Location, Node, Relation, ScanResult

logger = logging.getLogger(__name__)


class Scanner(Protocol):
    type_marker: str

    def scan(self, path: str) -> ScanResult: ...


class DocumentCollector(Protocol):
    def collect_documents(self) -> list[str]: ...


@dataclass
class GlobCollector:
    """Enumerate documents under the configured search paths."""

    search_paths: list[str]
    patterns: list[str] = field(default_factory=lambda: ["*.org"])

    def collect_documents(self) -> list[str]:
        found: set[str] = set()
        for raw in self.search_paths:
            root = Path(raw).expanduser()
            if root.is_file():
                found.add(str(root.resolve()))
                continue
            if not root.is_dir():
                logger.debug("Search path %s does not exist", root)
                continue
            for pattern in self.patterns:
                for p in root.rglob(pattern):
                    rel = p.relative_to(root).parts
                    if any(part.startswith(".") for part in rel):
                        continue
                    if p.is_file():
                        found.add(str(p.resolve()))
        return sorted(found)


_HEADING = re.compile(r"^(\*+)\s+(.*?)\s*$")
_TAGS = re.compile(r"\s+:[\w@#%:]+:\s*$")
_PROPERTY = re.compile(r"^\s*:([A-Za-z0-9_\-]+):\s*(.*?)\s*$")
_TITLE = re.compile(r"^#\+title:\s*(.*?)\s*$", re.IGNORECASE)
_ID_LINK = re.compile(r"\[\[id:([^\]]+)\](?:\[[^\]]*\])?\]")


def _targets(value: str) -> list[str]:
    ids = _ID_LINK.findall(value)
    rest = _ID_LINK.sub(" ", value)
    for token in rest.split():
        ids.append(token[3:] if token.startswith("id:") else token)
    return [i.strip() for i in ids if i.strip()]


@dataclass
class _Section:
    title: str
    pos: int
    outline: tuple[str, ...]
    is_container: bool
    props: dict[str, str] = field(default_factory=dict)


@dataclass
class OrgScanner:
    """Turns org documents into node and relation drafts."""

    relation_types: Iterable[str]
    type_marker: str = ":TYPE:"

    def __post_init__(self) -> None:
        self._relations = {r.lower() for r in self.relation_types}

    def scan(self, path: str) -> ScanResult:
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                text = f.read()
        except OSError as e:
            raise ScanError(path, f"cannot read: {e}") from e
        return self.scan_text(text, path=path)

    def scan_text(self, text: str, *, path: str) -> ScanResult:
        sections = self._sections(text, path)
        result = ScanResult()
        seen: set[str] = set()
        for sec in sections:
            node_id = sec.props.get("id")
            node_type = sec.props.get("type")
            if not node_id or not node_type:
                continue
            if node_id in seen:
                logger.warning("Duplicate id %s in %s; keeping the first", node_id, path)
                continue
            seen.add(node_id)
            result.nodes.append(
                Node(
                    id=node_id,
                    type=node_type.lower(),
                    title=sec.title,
                    location=Location(file=path, pos=sec.pos, outline=sec.outline),
                    is_container=sec.is_container,
                )
            )
            for key, value in sec.props.items():
                if key not in self._relations:
                    continue
                note = sec.props.get(f"{key}_note") or None
                for target in _targets(value):
                    result.relations.append(Relation(node_id, target, key, note))
        return result

    def _sections(self, text: str, path: str) -> list[_Section]:
        doc_title = os.path.splitext(os.path.basename(path))[0]
        top = _Section(title=doc_title, pos=0, outline=(), is_container=True)
        sections = [top]
        current = top
        stack: list[tuple[int, str]] = []
        in_drawer = False
        drawer_allowed = True
        offset = 0

        for line in text.splitlines(keepends=True):
            pos = offset
            offset += len(line)
            stripped = line.strip()

            if in_drawer:
                if stripped.upper() == ":END:":
                    in_drawer = False
                    continue
                m = _PROPERTY.match(line)
                if m:
                    key = m.group(1).lower()
                    prev = current.props.get(key)
                    if prev and key in self._relations:
                        current.props[key] = f"{prev} {m.group(2)}"
                    else:
                        current.props[key] = m.group(2)
                continue

            h = _HEADING.match(line)
            if h:
                level = len(h.group(1))
                title = _TAGS.sub("", h.group(2)).strip()
                while stack and stack[-1][0] >= level:
                    stack.pop()
                outline = tuple(t for _, t in stack)
                stack.append((level, title))
                current = _Section(title=title, pos=pos, outline=outline, is_container=False)
                sections.append(current)
                drawer_allowed = True
                continue

            if current is top:
                t = _TITLE.match(stripped)
                if t and t.group(1):
                    top.title = t.group(1)
                    continue

            if stripped.upper() == ":PROPERTIES:" and drawer_allowed:
                in_drawer = True
                drawer_allowed = False
                continue
            # A heading's drawer must directly follow it; the file drawer may follow keywords.
            if stripped and not (current is top and stripped.startswith("#")):
                drawer_allowed = False

        return sections
