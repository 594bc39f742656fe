"""
ChunkStream and CompletionBackend Protocols - the contract between the
suggestion pipeline and the upstream StreamCpp service.

This is the WHAT (interface), not the HOW (implementation).
See cursor.py for the concrete Connect-over-httpx implementation.
"""

from typing import Optional, Protocol

from cursor_tab.adapters.schema import StreamChunk, StreamCppRequest


class ChunkStream(Protocol):
    """
    An open, ordered, pull-based stream of StreamCpp chunks.

    A stream is consumed by exactly one task at a time. It may be handed
    from the request path to a background task mid-way through.
    """

    async def receive(self) -> Optional[StreamChunk]:
        """
        Wait for the next chunk.

        Returns:
            The next chunk, or None once the transport has closed cleanly.

        Raises:
            UpstreamError if the transport fails or the server sends an
            error trailer.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        ...


class CompletionBackend(Protocol):
    """Contract for the upstream completion service."""

    async def stream_cpp(self, request: StreamCppRequest) -> ChunkStream:
        """
        Open a StreamCpp call.

        Raises:
            UpstreamError if the call cannot be established.
        """
        ...
