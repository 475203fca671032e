# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

from arbor.storage.node.store import NODE_TABLE, NodeStore, nodes

__all__ = ["NODE_TABLE", "NodeStore", "nodes"]
