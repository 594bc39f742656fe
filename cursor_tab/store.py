"""
SuggestionStore - hands suggestions decoded in the background to later
fetch-by-id requests.

Entries are consumed exactly once. Nothing expires: a suggestion the editor
never asks for stays until the process exits.
"""

import asyncio
from typing import Optional

from cursor_tab.config import Suggestion


class SuggestionStore:
    """
    In-memory mapping of suggestion ID -> Suggestion.

    One asyncio.Lock guards the whole mapping; volume is a handful of
    entries per keystroke.
    """

    def __init__(self):
        self._suggestions: dict[str, Suggestion] = {}
        self._lock = asyncio.Lock()

    async def put(self, suggestion_id: str, suggestion: Suggestion) -> None:
        async with self._lock:
            self._suggestions[suggestion_id] = suggestion

    async def take(self, suggestion_id: str) -> Optional[Suggestion]:
        """Remove and return a suggestion, or None if absent or already taken."""
        async with self._lock:
            return self._suggestions.pop(suggestion_id, None)

    async def list(self) -> list[str]:
        """Return IDs currently held (diagnostic only)."""
        async with self._lock:
            return list(self._suggestions)

    def __len__(self) -> int:
        return len(self._suggestions)
