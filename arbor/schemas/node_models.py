# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Node(BaseModel):
    """A stored tree node."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Database-assigned identifier, never reused")
    name: str = Field(..., description="Non-empty label")
    parent_id: Optional[int] = Field(None, description="Parent node id, None for a root")
    created_at: datetime = Field(..., description="Creation time (UTC)")
    updated_at: datetime = Field(..., description="Last mutation time (UTC)")

    @field_validator("name")
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("'name' cannot be empty")
        return v.strip()

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Node":
        return cls(
            id=row["id"],
            name=row["name"],
            parent_id=row.get("parent_id"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class NodeDescendant(BaseModel):
    """Descendant listing entry: depth is counted from the queried node."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    depth: int = Field(..., ge=1, description="Parent-edge hops from the queried node")
