# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""
Descendant closure over the parent-pointer table.

Expands breadth-first from a root: each step fetches every node whose
``parent_id`` is in the current frontier, so depth is the step number and
results come out grouped by depth with ascending ids inside a level.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Protocol, Sequence, Set, TypeVar

from arbor.utils.exceptions import DataIntegrityError
from arbor.utils.loggings import get_integrity_logger, get_logger

logger = get_logger(__name__)
integrity_logger = get_integrity_logger()

DEFAULT_BATCH_SIZE = 500

T = TypeVar("T")


class ChildLookup(Protocol):
    def children_of(self, parent_ids: Sequence[int]) -> List[dict]:
        """Rows with ``id``, ``name`` and ``parent_id`` for the given parents."""


@dataclass(frozen=True)
class DescendantRow:
    id: int
    name: str
    parent_id: int
    depth: int


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def descendants_of(
    store: ChildLookup,
    root_id: int,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[DescendantRow]:
    """Compute all strict descendants of ``root_id`` with their depth.

    Args:
        store: Source of parent -> children edges
        root_id: Node to expand from; an unknown id yields an empty list
        batch_size: Maximum parent ids per lookup query

    Returns:
        Descendants ordered by depth, then id. The root itself is excluded.

    Raises:
        DataIntegrityError: A node was reached twice, so the stored parent
            relation contains a cycle
    """
    visited: Set[int] = {root_id}
    result: List[DescendantRow] = []
    frontier: List[int] = [root_id]
    depth = 0

    while frontier:
        depth += 1
        level: List[DescendantRow] = []
        for batch in chunked(frontier, batch_size):
            for row in store.children_of(batch):
                node_id = row["id"]
                if node_id in visited:
                    _report_revisit(root_id, node_id, row.get("parent_id"), depth)
                visited.add(node_id)
                level.append(DescendantRow(node_id, row["name"], row["parent_id"], depth))

        # Batches are id-ordered individually, not across each other
        level.sort(key=lambda r: r.id)
        result.extend(level)
        frontier = [r.id for r in level]

    logger.debug(f"Closure of node {root_id}: {len(result)} descendants, max depth {depth - 1}")
    return result


def _report_revisit(root_id: int, node_id: int, parent_id: Optional[int], depth: int) -> None:
    message = (
        f"node {node_id} reached again at depth {depth} via parent {parent_id} "
        f"while expanding node {root_id}; the parent relation contains a cycle"
    )
    integrity_logger.error(message)
    raise DataIntegrityError(message)
