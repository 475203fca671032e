# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

from arbor.schemas.node_models import Node, NodeDescendant

__all__ = ["Node", "NodeDescendant"]
