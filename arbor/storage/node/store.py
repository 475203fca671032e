# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""
Node storage on SQLAlchemy Core (default: a SQLite file).

One table holds the whole forest: each row points at its parent through a
nullable self-referencing ``parent_id`` column.
"""

from contextlib import AbstractContextManager
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Column, ForeignKey, Index, Integer, MetaData, Table, Text, delete, func, insert, select, update

from arbor.storage.db_manager import DBManager
from arbor.utils.loggings import get_logger

logger = get_logger(__name__)

NODE_TABLE = "nodes"

metadata = MetaData()

# sqlite_autoincrement: ids of deleted rows are never handed out again
nodes = Table(
    NODE_TABLE,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("parent_id", Integer, ForeignKey(f"{NODE_TABLE}.id"), nullable=True),
    Column("created_at", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
    sqlite_autoincrement=True,
)
Index("idx_nodes_parent_id", nodes.c.parent_id)


class NodeStore:
    """Row-level access to the ``nodes`` table."""

    def __init__(
        self,
        db_path: str,
        db_name: str = "arbor.db",
        connection_string: Optional[str] = None,
        busy_timeout: float = 5.0,
    ):
        """Initialize the node store.

        Args:
            db_path: Directory where the SQLite database file lives
            db_name: Database filename
            connection_string: Optional SQLAlchemy URL overriding the SQLite file
            busy_timeout: Seconds SQLite waits on a locked database
        """
        self.db_manager = DBManager.get_instance(
            db_path,
            db_name=db_name,
            connection_string=connection_string,
            busy_timeout=busy_timeout,
        )
        self.db_manager.create_tables(metadata)
        logger.debug(f"Nodes table ensured on {self.db_manager.connection_string}")

    def transaction(self) -> AbstractContextManager:
        return self.db_manager.transaction()

    def get_node(self, node_id: int) -> Optional[Dict[str, Any]]:
        rows = self.db_manager.fetch_all(select(nodes).where(nodes.c.id == node_id))
        return rows[0] if rows else None

    def exists(self, node_id: int) -> bool:
        rows = self.db_manager.fetch_all(select(nodes.c.id).where(nodes.c.id == node_id).limit(1), operation="exists")
        return bool(rows)

    def list_nodes(self) -> List[Dict[str, Any]]:
        return self.db_manager.fetch_all(select(nodes).order_by(nodes.c.id))

    def count(self) -> int:
        return int(self.db_manager.fetch_scalar(select(func.count()).select_from(nodes), operation="count") or 0)

    def children_of(self, parent_ids: Sequence[int]) -> List[Dict[str, Any]]:
        """Return ``(id, name, parent_id)`` rows whose parent is in ``parent_ids``, by id."""
        if not parent_ids:
            return []
        stmt = (
            select(nodes.c.id, nodes.c.name, nodes.c.parent_id)
            .where(nodes.c.parent_id.in_(list(parent_ids)))
            .order_by(nodes.c.id)
        )
        return self.db_manager.fetch_all(stmt, operation="children")

    def insert_node(self, name: str, parent_id: Optional[int], timestamp: str) -> int:
        node_id = self.db_manager.insert(
            insert(nodes).values(name=name, parent_id=parent_id, created_at=timestamp, updated_at=timestamp)
        )
        logger.debug(f"Inserted node {node_id} under parent {parent_id}")
        return node_id

    def set_parent(self, node_id: int, parent_id: Optional[int], timestamp: str) -> int:
        """Rewrite ``parent_id`` as given; acyclicity is the caller's concern."""
        stmt = update(nodes).where(nodes.c.id == node_id).values(parent_id=parent_id, updated_at=timestamp)
        return self.db_manager.execute(stmt, operation="update")

    def delete_nodes(self, node_ids: Sequence[int]) -> int:
        if not node_ids:
            return 0
        return self.db_manager.execute(delete(nodes).where(nodes.c.id.in_(list(node_ids))), operation="delete")
