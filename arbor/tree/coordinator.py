# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""
Transactional tree mutations: create, subtree delete and cycle-checked move.

Every mutation runs in one storage transaction, and the descendant closure it
depends on is read inside that same transaction.
"""

from typing import List, Optional

from arbor.schemas.node_models import Node, NodeDescendant
from arbor.storage.node.store import NodeStore
from arbor.tree.closure import DEFAULT_BATCH_SIZE, DescendantRow, chunked, descendants_of
from arbor.utils.clock import Clock, SystemClock, format_timestamp
from arbor.utils.exceptions import InvalidMoveError, InvalidRequestError, NodeNotFoundError
from arbor.utils.loggings import get_logger

logger = get_logger(__name__)


class MutationCoordinator:
    """Applies tree mutations against a ``NodeStore``.

    Existence of referenced nodes is the caller's concern for create and
    delete (see ``TreeService``); ``move_node`` checks on its own.
    """

    def __init__(
        self,
        store: NodeStore,
        clock: Optional[Clock] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.batch_size = batch_size

    def _now(self) -> str:
        return format_timestamp(self.clock.now())

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise InvalidRequestError("name", "Node name cannot be empty")
        return cleaned

    def _load(self, node_id: int) -> Node:
        row = self.store.get_node(node_id)
        if row is None:
            raise NodeNotFoundError(node_id)
        return Node.from_row(row)

    def descendants_of(self, root_id: int) -> List[DescendantRow]:
        return descendants_of(self.store, root_id, batch_size=self.batch_size)

    def create_root(self, name: str) -> Node:
        return self._insert(None, name)

    def create_child(self, parent_id: int, name: str) -> Node:
        return self._insert(parent_id, name)

    def _insert(self, parent_id: Optional[int], name: str) -> Node:
        cleaned = self._clean_name(name)
        with self.store.transaction():
            node_id = self.store.insert_node(cleaned, parent_id, self._now())
            node = self._load(node_id)
        logger.info(f"Created node {node.id} '{node.name}' under {parent_id if parent_id is not None else 'root'}")
        return node

    def delete_subtree(self, node_id: int) -> int:
        """Delete ``node_id`` and all of its descendants atomically.

        Returns:
            Number of rows deleted; 0 when the node did not exist
        """
        with self.store.transaction():
            descendants = self.descendants_of(node_id)
            # Deepest first so no statement removes a parent whose children remain
            doomed = [row.id for row in reversed(descendants)]
            deleted = 0
            for batch in chunked(doomed, self.batch_size):
                deleted += self.store.delete_nodes(batch)
            deleted += self.store.delete_nodes([node_id])

        if deleted:
            logger.info(f"Deleted subtree of node {node_id}: {deleted} nodes")
        return deleted

    def move_node(self, node_id: int, new_parent_id: Optional[int]) -> Node:
        """Re-parent ``node_id``; ``None`` turns it into a root.

        Raises:
            NodeNotFoundError: ``node_id`` or ``new_parent_id`` does not exist
            InvalidMoveError: the move targets the node itself or one of its descendants
        """
        with self.store.transaction():
            current = self._load(node_id)

            if new_parent_id is not None:
                if new_parent_id == node_id:
                    raise InvalidMoveError("Cannot move node to itself")
                descendant_ids = {row.id for row in self.descendants_of(node_id)}
                if new_parent_id in descendant_ids:
                    raise InvalidMoveError("Cannot move node to its descendant")
                if not self.store.exists(new_parent_id):
                    raise NodeNotFoundError(new_parent_id)

            self.store.set_parent(node_id, new_parent_id, self._now())
            moved = self._load(node_id)

        logger.info(f"Moved node {node_id} from parent {current.parent_id} to {new_parent_id}")
        return moved

    def get_descendants(self, root_id: int) -> List[NodeDescendant]:
        return [NodeDescendant(id=row.id, name=row.name, depth=row.depth) for row in self.descendants_of(root_id)]

    def get_node(self, node_id: int) -> Optional[Node]:
        row = self.store.get_node(node_id)
        return Node.from_row(row) if row else None

    def list_nodes(self) -> List[Node]:
        return [Node.from_row(row) for row in self.store.list_nodes()]
