"""
Filesystem view of a ZooKeeper tree.
Nodes with children are directories, leaf nodes are files holding the node's data.
"""

__version__ = "0.1.0"
