"""
Adapters for the upstream completion service.

Protocol defines WHAT, implementations define HOW.
"""

from .base import ChunkStream, CompletionBackend
from .cursor import CursorAdapter

__all__ = ["ChunkStream", "CompletionBackend", "CursorAdapter"]
