"""
Local mirror of the remote ZooKeeper tree.
This module provides the node model and the watch-driven and passthrough mirrors.
"""

from .node import Node
from .tree_mirror import PassthroughMirror, TreeMirror

__all__ = ['Node', 'TreeMirror', 'PassthroughMirror']
