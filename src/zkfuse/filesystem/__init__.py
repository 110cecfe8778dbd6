"""
ZooKeeper-backed filesystem.
This module provides the filesystem operations and the FUSE interface.
"""

from .fs_operations import FSOperations, LifecycleState

__all__ = ['FSOperations', 'LifecycleState']
