"""
Knowledge base configuration.

Provides:
- KnowledgeBase descriptor (identity, read-only flag, graphs, reification)
- Configuration validation
- YAML / JSON load and save with schema version checks
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from kbgraph.storage.reification import ReificationMode

logger = logging.getLogger(__name__)

# Current schema version of knowledge base config files
CURRENT_SCHEMA_VERSION = "1.0.0"

# Graph holding reasoner-derived entries unless configured otherwise
DEFAULT_INFERRED_GRAPH = "urn:kbgraph:inferred"

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class SchemaVersionError(Exception):
    """Schema version error."""
    pass


class ConfigValidationError(Exception):
    """Configuration validation error."""
    pass


_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")


def parse_version(version: str) -> Tuple[int, int, int]:
    """(major, minor, patch) of a schema version; unparseable versions are 0.0.0."""
    match = _VERSION_PATTERN.match(version.strip())
    if not match:
        return (0, 0, 0)
    major, minor, patch = match.groups()
    return (int(major), int(minor), int(patch or 0))


def compare_versions(v1: str, v2: str) -> int:
    """-1, 0 or 1 as v1 is older than, equal to or newer than v2."""
    t1, t2 = parse_version(v1), parse_version(v2)
    return (t1 > t2) - (t1 < t2)


@dataclass
class KnowledgeBase:
    """
    A knowledge base served by a quad store.

    Entries in ``inferred_graph`` are reasoner-derived; every other graph
    holds explicit (user-asserted or imported) entries. New statements are
    written to ``explicit_graph`` (None = default graph).
    """
    id: str
    name: str = ""
    description: str = ""
    read_only: bool = False
    reification: ReificationMode = ReificationMode.RDF
    explicit_graph: Optional[str] = None
    inferred_graph: str = DEFAULT_INFERRED_GRAPH

    schema_version: str = CURRENT_SCHEMA_VERSION
    created_at: datetime = field(default_factory=datetime.now)

    def is_inferred_graph(self, graph: Optional[str]) -> bool:
        return graph == self.inferred_graph

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "read_only": self.read_only,
            "reification": self.reification.value,
            "explicit_graph": self.explicit_graph,
            "inferred_graph": self.inferred_graph,
            "schema_version": self.schema_version,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeBase":
        """
        Build from a dict.

        Raises:
            ConfigValidationError: missing id or unknown reification mode
            SchemaVersionError: written by a newer, incompatible schema
        """
        if not data.get("id"):
            raise ConfigValidationError("Knowledge base config requires an 'id'")

        schema_version = str(data.get("schema_version", CURRENT_SCHEMA_VERSION))
        if parse_version(schema_version)[0] > parse_version(CURRENT_SCHEMA_VERSION)[0]:
            raise SchemaVersionError(
                f"Config schema {schema_version} is newer than supported {CURRENT_SCHEMA_VERSION}"
            )

        try:
            reification = ReificationMode(data.get("reification", ReificationMode.RDF.value))
        except ValueError:
            valid = [m.value for m in ReificationMode]
            raise ConfigValidationError(
                f"Invalid reification '{data.get('reification')}'. Valid options: {valid}"
            ) from None

        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        elif not isinstance(created_at, datetime):
            created_at = datetime.now()

        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            read_only=bool(data.get("read_only", False)),
            reification=reification,
            explicit_graph=data.get("explicit_graph"),
            inferred_graph=data.get("inferred_graph", DEFAULT_INFERRED_GRAPH),
            schema_version=schema_version,
            created_at=created_at,
        )


class ConfigValidator:
    """Validates knowledge base configuration."""

    @staticmethod
    def validate(kb: KnowledgeBase) -> List[str]:
        """
        Validate configuration.

        Returns list of error messages (empty if valid).
        """
        errors = []

        if not kb.id:
            errors.append("id cannot be empty")
        elif not _ID_PATTERN.match(kb.id):
            errors.append("id can only contain alphanumeric characters, hyphens, and underscores")

        if not kb.inferred_graph:
            errors.append("inferred_graph cannot be empty")
        elif kb.inferred_graph == kb.explicit_graph:
            errors.append("inferred_graph and explicit_graph must differ")

        if compare_versions(kb.schema_version, CURRENT_SCHEMA_VERSION) > 0:
            errors.append(f"Unsupported schema_version: {kb.schema_version}")

        return errors

    @staticmethod
    def validate_or_raise(kb: KnowledgeBase) -> None:
        """Validate configuration, raising on errors."""
        errors = ConfigValidator.validate(kb)
        if errors:
            raise ConfigValidationError("; ".join(errors))


def load_knowledge_base(path: Union[str, Path]) -> KnowledgeBase:
    """
    Load and validate a knowledge base config (.yaml, .yml or .json).

    Raises:
        FileNotFoundError: no such file
        ConfigValidationError: unreadable or invalid config
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")

    if path.suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {path}: {e}") from e
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path} does not contain a mapping")

    kb = KnowledgeBase.from_dict(data)
    ConfigValidator.validate_or_raise(kb)
    logger.debug(f"Loaded knowledge base config '{kb.id}' from {path}")
    return kb


def save_knowledge_base(kb: KnowledgeBase, path: Union[str, Path]) -> Path:
    """Validate and save a knowledge base config; format follows the suffix."""
    ConfigValidator.validate_or_raise(kb)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(kb.to_dict(), f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        else:
            json.dump(kb.to_dict(), f, indent=2)

    logger.info(f"Saved knowledge base config '{kb.id}' to {path}")
    return path
