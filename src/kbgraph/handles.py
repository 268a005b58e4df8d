"""
Resource handles.

A ResourceHandle names a store resource (subject or predicate of a
statement) and optionally carries a display label. Identity is the id
alone: two handles with the same id and different labels are equal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class ResourceHandle:
    """
    Immutable reference to a store resource.

    Attributes:
        id: Stable resource identifier (IRI or prefixed name)
        label: Optional display name, ignored by equality
    """
    id: str
    label: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Resource id cannot be empty")

    def with_label(self, label: Optional[str]) -> "ResourceHandle":
        """Return a handle for the same resource with another label."""
        return ResourceHandle(self.id, label)

    @property
    def display_name(self) -> str:
        return self.label or self.id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceHandle":
        return cls(id=data["id"], label=data.get("label"))
