# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""
Boundary-facing tree operations.

Performs the existence and parent/child checks that front the mutation
coordinator, so callers get ``NodeNotFoundError`` or ``InvalidRequestError``
before any write is attempted.
"""

from typing import List, Optional

from arbor.configuration.tree_config import TreeConfig
from arbor.schemas.node_models import Node, NodeDescendant
from arbor.storage.node.store import NodeStore
from arbor.tree.coordinator import MutationCoordinator
from arbor.utils.clock import Clock
from arbor.utils.exceptions import InvalidRequestError, NodeNotFoundError
from arbor.utils.loggings import get_logger

logger = get_logger(__name__)


class TreeService:
    def __init__(self, coordinator: MutationCoordinator):
        self.coordinator = coordinator

    @classmethod
    def from_config(cls, config: TreeConfig, clock: Optional[Clock] = None) -> "TreeService":
        store = NodeStore(**config.store_kwargs())
        return cls(MutationCoordinator(store, clock=clock, batch_size=config.tree.closure_batch_size))

    def require_node(self, node_id: int) -> Node:
        node = self.coordinator.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_node(self, node_id: int) -> Node:
        return self.require_node(node_id)

    def list_nodes(self) -> List[Node]:
        return self.coordinator.list_nodes()

    def create_root(self, name: str) -> Node:
        return self.coordinator.create_root(name)

    def create_child(self, parent_id: int, name: str) -> Node:
        self.require_node(parent_id)
        return self.coordinator.create_child(parent_id, name)

    def delete_child(self, parent_id: int, child_id: int) -> int:
        """Delete ``child_id`` and its subtree once it is confirmed to belong to ``parent_id``."""
        self.require_node(parent_id)
        child = self.require_node(child_id)
        if child.parent_id != parent_id:
            raise InvalidRequestError("child_id", f"Node {child_id} is not a child of node {parent_id}")
        return self.coordinator.delete_subtree(child_id)

    def delete_tree(self, node_id: int) -> int:
        self.require_node(node_id)
        return self.coordinator.delete_subtree(node_id)

    def move_node(self, node_id: int, new_parent_id: Optional[int]) -> Node:
        return self.coordinator.move_node(node_id, new_parent_id)

    def get_descendants(self, node_id: int) -> List[NodeDescendant]:
        self.require_node(node_id)
        return self.coordinator.get_descendants(node_id)
