"""Node and relation type registry.

Types are open-ended strings. The four built-in node types and relation types
ship with default formulas and canonical patterns; a JSON file can extend or
override any of them at startup.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .errors import RegistryError
from .graph.models import Direction

logger = logging.getLogger(__name__)

# Formula table key naming the attribute surfaced as a node type's badge.
BADGE_ATTRIBUTE = "badge"


class NodeType(str, Enum):
    QUESTION = "question"
    CLAIM = "claim"
    EVIDENCE = "evidence"
    SOURCE = "source"


class RelationType(str, Enum):
    SUPPORTS = "supports"
    OPPOSES = "opposes"
    INFORMS = "informs"
    ANSWERS = "answers"


class NodeTypeSpec(BaseModel):
    description: str = ""
    # attribute name -> formula source; the `badge` entry names another attribute
    formulas: dict[str, str] = Field(default_factory=dict)


class RelationTypeSpec(BaseModel):
    inverse: str
    description: str = ""
    source_types: list[str] = Field(default_factory=list)
    target_types: list[str] = Field(default_factory=list)


class RegistryConfig(BaseModel):
    node_types: dict[str, NodeTypeSpec] = Field(default_factory=dict)
    relation_types: dict[str, RelationTypeSpec] = Field(default_factory=dict)


DEFAULT_CONFIG: dict[str, Any] = {
    "node_types": {
        "question": {
            "description": "An open research question",
            "formulas": {
                "answer_count": "{count:answered_by:claim}",
                "avg_answer_score": "{avg:answered_by:claim:evidence_score}",
                "badge": "answer_count",
            },
        },
        "claim": {
            "description": "An assertion that can be supported or opposed",
            "formulas": {
                "support_count": "{count:supported_by:evidence}",
                "opposition_count": "{count:opposed_by:evidence}",
                "evidence_score": "{count:supported_by:evidence} - {count:opposed_by:evidence}",
                "badge": "evidence_score",
            },
        },
        "evidence": {
            "description": "An observation or result backing a claim",
            "formulas": {
                "source_count": "{count:informs:source} + {count:informed_by:source}",
                "claims_supported": "{count:supports:claim}",
                "badge": "source_count",
            },
        },
        "source": {
            "description": "A cited publication or dataset",
            "formulas": {
                "evidence_count": "{count:informs:evidence} + {count:informed_by:evidence}",
            },
        },
    },
    "relation_types": {
        "supports": {
            "inverse": "supported_by",
            "source_types": ["evidence"],
            "target_types": ["claim"],
        },
        "opposes": {
            "inverse": "opposed_by",
            "source_types": ["evidence"],
            "target_types": ["claim"],
        },
        "informs": {
            "inverse": "informed_by",
            "source_types": ["evidence", "source"],
            "target_types": ["evidence", "source"],
        },
        "answers": {
            "inverse": "answered_by",
            "source_types": ["claim"],
            "target_types": ["question"],
        },
    },
}


@dataclass(frozen=True, slots=True)
class RelationPattern:
    rel_type: str
    source_types: frozenset[str]
    target_types: frozenset[str]


class TypeRegistry:
    """Lookup tables built from a validated RegistryConfig."""

    def __init__(self, config: RegistryConfig):
        self.config = config
        self._relation_names: dict[str, tuple[str, Direction]] = {}
        for rel_type, spec in config.relation_types.items():
            for name, direction in ((rel_type, "out"), (spec.inverse, "in")):
                if name in self._relation_names:
                    raise RegistryError(f"relation name {name!r} is defined twice")
                self._relation_names[name] = (rel_type, direction)

            for t in (*spec.source_types, *spec.target_types):
                if t not in config.node_types:
                    raise RegistryError(f"pattern for {rel_type!r} names unknown node type {t!r}")

        for node_type, spec in config.node_types.items():
            badge = spec.formulas.get(BADGE_ATTRIBUTE)
            if badge is not None and badge not in spec.formulas:
                raise RegistryError(f"badge of {node_type!r} names unknown attribute {badge!r}")

    @property
    def node_types(self) -> list[str]:
        return list(self.config.node_types)

    @property
    def relation_types(self) -> list[str]:
        return list(self.config.relation_types)

    def resolve_relation(self, name: str) -> tuple[str, Direction] | None:
        """Map a formula relation name to (canonical rel_type, direction)."""
        return self._relation_names.get(name)

    def relation_label(self, rel_type: str, direction: Direction) -> str:
        spec = self.config.relation_types.get(rel_type)
        if spec is None or direction == "out":
            return rel_type
        return spec.inverse

    def formulas(self, node_type: str) -> dict[str, str]:
        spec = self.config.node_types.get(node_type)
        if spec is None:
            return {}
        return {k: v for k, v in spec.formulas.items() if k != BADGE_ATTRIBUTE}

    def formula(self, node_type: str, attribute: str) -> str | None:
        if attribute == BADGE_ATTRIBUTE:
            return None
        return self.formulas(node_type).get(attribute)

    def badge_attribute(self, node_type: str) -> str | None:
        spec = self.config.node_types.get(node_type)
        return spec.formulas.get(BADGE_ATTRIBUTE) if spec else None

    def pattern(self, rel_type: str) -> RelationPattern | None:
        spec = self.config.relation_types.get(rel_type)
        if spec is None or not (spec.source_types or spec.target_types):
            return None
        return RelationPattern(
            rel_type=rel_type,
            source_types=frozenset(spec.source_types),
            target_types=frozenset(spec.target_types),
        )


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for section in ("node_types", "relation_types"):
        merged = dict(base.get(section, {}))
        for name, spec in (override.get(section) or {}).items():
            if name in merged and isinstance(spec, dict):
                combined = {**merged[name], **spec}
                if "formulas" in spec:
                    combined["formulas"] = {**merged[name].get("formulas", {}), **spec["formulas"]}
                merged[name] = combined
            else:
                merged[name] = spec
        out[section] = merged
    return out


def build_registry(override: dict[str, Any] | None = None) -> TypeRegistry:
    raw = _merge(DEFAULT_CONFIG, override or {})
    try:
        config = RegistryConfig.model_validate(raw)
    except ValidationError as e:
        raise RegistryError(f"invalid registry configuration: {e}") from e
    return TypeRegistry(config)


def load_registry(path: str | None = None) -> TypeRegistry:
    """Defaults, extended by the JSON file at `path` when given."""
    if not path:
        return build_registry()
    p = Path(path).expanduser()
    try:
        override = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RegistryError(f"cannot read registry file {p}: {e}") from e
    logger.info("Loaded type registry overrides from %s", p)
    return build_registry(override)
