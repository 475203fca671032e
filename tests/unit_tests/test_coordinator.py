"""Unit tests for MutationCoordinator."""

from datetime import datetime, timezone

import pytest

from arbor.tree.coordinator import MutationCoordinator
from arbor.utils.exceptions import (
    ArborException,
    DataIntegrityError,
    ErrorCode,
    InvalidMoveError,
    InvalidRequestError,
    NodeNotFoundError,
    Outcome,
)


def _assert_forest(coordinator):
    """Every parent chain must end at a root within len(nodes) hops."""
    nodes = {n.id: n for n in coordinator.list_nodes()}
    for node in nodes.values():
        current, hops = node, 0
        while current.parent_id is not None:
            assert current.parent_id in nodes
            current = nodes[current.parent_id]
            hops += 1
            assert hops <= len(nodes)


class TestMutationCoordinator:
    @pytest.fixture
    def coordinator(self, node_store, clock):
        return MutationCoordinator(node_store, clock=clock)

    @pytest.fixture
    def tree(self, coordinator):
        """root -> (a -> (a1, a2 -> a2x), b -> b1); other is a separate root."""
        root = coordinator.create_root("root")
        a = coordinator.create_child(root.id, "a")
        b = coordinator.create_child(root.id, "b")
        a1 = coordinator.create_child(a.id, "a1")
        a2 = coordinator.create_child(a.id, "a2")
        a2x = coordinator.create_child(a2.id, "a2x")
        b1 = coordinator.create_child(b.id, "b1")
        other = coordinator.create_root("other")
        return {n.name: n.id for n in (root, a, b, a1, a2, a2x, b1, other)}

    # ========== Create ==========

    def test_create_root_and_child(self, coordinator):
        root = coordinator.create_root("root")
        child = coordinator.create_child(root.id, "child")

        assert root.parent_id is None
        assert root.is_root
        assert child.parent_id == root.id
        assert child.id != root.id
        assert coordinator.get_node(child.id) == child

    def test_timestamps_come_from_clock(self, coordinator):
        root = coordinator.create_root("root")
        child = coordinator.create_child(root.id, "child")

        assert root.created_at == datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert root.updated_at == root.created_at
        assert child.created_at == datetime(2025, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    def test_name_is_stripped(self, coordinator):
        node = coordinator.create_root("  spaced  ")
        assert node.name == "spaced"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_rejected(self, coordinator, name):
        with pytest.raises(InvalidRequestError) as exc_info:
            coordinator.create_root(name)

        assert exc_info.value.outcome == Outcome.BAD_REQUEST
        assert coordinator.list_nodes() == []

    def test_child_of_missing_parent_violates_foreign_key(self, coordinator):
        with pytest.raises(ArborException) as exc_info:
            coordinator.create_child(9999, "orphan")

        assert exc_info.value.code == ErrorCode.DB_CONSTRAINT_VIOLATION
        assert coordinator.list_nodes() == []

    # ========== Descendants ==========

    def test_get_descendants_depths(self, coordinator, tree):
        result = coordinator.get_descendants(tree["root"])

        assert [(d.name, d.depth) for d in result] == [
            ("a", 1),
            ("b", 1),
            ("a1", 2),
            ("a2", 2),
            ("b1", 2),
            ("a2x", 3),
        ]

    def test_get_descendants_of_leaf(self, coordinator, tree):
        assert coordinator.get_descendants(tree["a2x"]) == []

    # ========== Delete ==========

    def test_delete_subtree_removes_node_and_descendants(self, coordinator, tree):
        doomed = {tree["a"], tree["a1"], tree["a2"], tree["a2x"]}

        deleted = coordinator.delete_subtree(tree["a"])

        assert deleted == len(doomed)
        remaining = {n.id for n in coordinator.list_nodes()}
        assert not remaining & doomed

    def test_delete_subtree_leaves_rest_untouched(self, coordinator, tree):
        before = {n.id: n for n in coordinator.list_nodes()}

        coordinator.delete_subtree(tree["a"])

        after = {n.id: n for n in coordinator.list_nodes()}
        for name in ("root", "b", "b1", "other"):
            assert after[tree[name]] == before[tree[name]]
        assert [d.name for d in coordinator.get_descendants(tree["root"])] == ["b", "b1"]

    def test_delete_leaf(self, coordinator, tree):
        assert coordinator.delete_subtree(tree["b1"]) == 1
        assert coordinator.get_node(tree["b1"]) is None
        assert coordinator.get_node(tree["b"]) is not None

    def test_delete_missing_node_is_noop(self, coordinator, tree):
        assert coordinator.delete_subtree(9999) == 0
        assert len(coordinator.list_nodes()) == len(tree)

    def test_delete_wide_subtree_in_batches(self, node_store, clock):
        coordinator = MutationCoordinator(node_store, clock=clock, batch_size=2)
        root = coordinator.create_root("root")
        for i in range(5):
            child = coordinator.create_child(root.id, f"c{i}")
            coordinator.create_child(child.id, f"g{i}")

        assert coordinator.delete_subtree(root.id) == 11
        assert coordinator.list_nodes() == []

    def test_delete_is_atomic(self, coordinator, node_store, tree, monkeypatch):
        original_delete = node_store.delete_nodes

        def failing_delete(node_ids):
            if list(node_ids) == [tree["a"]]:
                raise RuntimeError("disk on fire")
            return original_delete(node_ids)

        monkeypatch.setattr(node_store, "delete_nodes", failing_delete)

        with pytest.raises(RuntimeError):
            coordinator.delete_subtree(tree["a"])

        remaining = {n.id for n in coordinator.list_nodes()}
        assert remaining == set(tree.values())

    def test_ids_are_never_reused(self, coordinator, tree):
        issued = max(tree.values())
        coordinator.delete_subtree(tree["root"])
        coordinator.delete_subtree(tree["other"])

        fresh = coordinator.create_root("fresh")

        assert fresh.id > issued

    # ========== Move ==========

    def test_move_reparents_subtree(self, coordinator, tree):
        moved = coordinator.move_node(tree["a2"], tree["b"])

        assert moved.parent_id == tree["b"]
        assert moved.updated_at > moved.created_at
        assert [(d.name, d.depth) for d in coordinator.get_descendants(tree["b"])] == [
            ("a2", 1),
            ("b1", 1),
            ("a2x", 2),
        ]
        assert [d.name for d in coordinator.get_descendants(tree["a"])] == ["a1"]
        _assert_forest(coordinator)

    def test_move_to_current_parent_is_noop(self, coordinator, tree):
        before = {n.id: n for n in coordinator.list_nodes()}

        moved = coordinator.move_node(tree["a2"], tree["a"])

        after = {n.id: n for n in coordinator.list_nodes()}
        assert {i: n.parent_id for i, n in after.items()} == {i: n.parent_id for i, n in before.items()}
        assert moved.parent_id == tree["a"]
        assert moved.updated_at > before[tree["a2"]].updated_at
        for node_id, node in after.items():
            if node_id != tree["a2"]:
                assert node == before[node_id]

    def test_move_to_root(self, coordinator, tree):
        moved = coordinator.move_node(tree["a"], None)

        assert moved.is_root
        assert [d.name for d in coordinator.get_descendants(tree["root"])] == ["b", "b1"]
        assert [d.name for d in coordinator.get_descendants(tree["a"])] == ["a1", "a2", "a2x"]

    def test_move_across_trees(self, coordinator, tree):
        coordinator.move_node(tree["b"], tree["other"])

        assert [(d.name, d.depth) for d in coordinator.get_descendants(tree["other"])] == [("b", 1), ("b1", 2)]
        _assert_forest(coordinator)

    def test_move_to_self_rejected(self, coordinator, tree):
        before = coordinator.list_nodes()

        with pytest.raises(InvalidMoveError) as exc_info:
            coordinator.move_node(tree["a"], tree["a"])

        assert exc_info.value.message == "Cannot move node to itself"
        assert exc_info.value.outcome == Outcome.BAD_REQUEST
        assert coordinator.list_nodes() == before

    @pytest.mark.parametrize("target", ["a1", "a2", "a2x"])
    def test_move_into_descendant_rejected(self, coordinator, tree, target):
        before = coordinator.list_nodes()

        with pytest.raises(InvalidMoveError) as exc_info:
            coordinator.move_node(tree["a"], tree[target])

        assert exc_info.value.message == "Cannot move node to its descendant"
        assert coordinator.list_nodes() == before

    def test_move_missing_node(self, coordinator, tree):
        with pytest.raises(NodeNotFoundError) as exc_info:
            coordinator.move_node(9999, tree["root"])

        assert exc_info.value.node_id == 9999
        assert exc_info.value.outcome == Outcome.NOT_FOUND

    def test_move_missing_node_checked_before_self_move(self, coordinator, tree):
        with pytest.raises(NodeNotFoundError):
            coordinator.move_node(9999, 9999)

    def test_move_to_missing_parent(self, coordinator, tree):
        before = coordinator.list_nodes()

        with pytest.raises(NodeNotFoundError) as exc_info:
            coordinator.move_node(tree["a"], 9999)

        assert exc_info.value.node_id == 9999
        assert coordinator.list_nodes() == before

    def test_forest_holds_after_mixed_operations(self, coordinator, tree):
        coordinator.move_node(tree["b"], tree["a2x"])
        coordinator.move_node(tree["other"], tree["b1"])
        coordinator.create_child(tree["other"], "late")
        with pytest.raises(InvalidMoveError):
            coordinator.move_node(tree["a"], tree["other"])
        coordinator.move_node(tree["a2"], None)
        coordinator.delete_subtree(tree["a1"])

        _assert_forest(coordinator)
        assert [(d.name, d.depth) for d in coordinator.get_descendants(tree["a2"])] == [
            ("a2x", 1),
            ("b", 2),
            ("b1", 3),
            ("other", 4),
            ("late", 5),
        ]

    # ========== Corrupted storage ==========

    def test_cycle_aborts_delete_without_changes(self, coordinator, node_store, tree):
        node_store.set_parent(tree["a"], tree["a2x"], "2025-06-01T00:00:00Z")

        with pytest.raises(DataIntegrityError) as exc_info:
            coordinator.delete_subtree(tree["a"])

        assert exc_info.value.outcome == Outcome.INTEGRITY
        assert {n.id for n in coordinator.list_nodes()} == set(tree.values())

    def test_cycle_aborts_move(self, coordinator, node_store, tree):
        node_store.set_parent(tree["b"], tree["b1"], "2025-06-01T00:00:00Z")

        with pytest.raises(DataIntegrityError):
            coordinator.move_node(tree["b"], tree["root"])

        assert coordinator.get_node(tree["b"]).parent_id == tree["b1"]
