"""
Stream decoder: reassembles StreamCpp chunks into complete edit suggestions.

Chunk grammar (per suggestion):

    (range | text)* done_edit  (begin_edit <next suggestion> | done_stream)

decode_next() consumes chunks up to and including the next done_edit (or a
done_stream that arrives first) and leaves the stream positioned right after
it, so the caller can peek at what follows.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cursor_tab.adapters.base import ChunkStream
from cursor_tab.adapters.schema import StreamChunk
from cursor_tab.errors import StreamDecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineRange:
    """1-based, inclusive line span as carried on the wire. No columns."""
    start_line: int
    end_line: int


@dataclass
class DecodedSuggestion:
    """One edit unit as read off the stream, before it gets an ID."""
    text: str = ""
    line_range: Optional[LineRange] = None
    binding_id: Optional[str] = None
    should_remove_leading_eol: bool = False

    def apply_range_chunk(self, chunk: StreamChunk) -> None:
        rng = chunk.range_to_replace
        self.line_range = LineRange(
            start_line=rng.start_line_number,
            end_line=rng.end_line_number_inclusive,
        )
        if chunk.binding_id is not None:
            self.binding_id = chunk.binding_id
        if chunk.should_remove_leading_eol is not None:
            self.should_remove_leading_eol = chunk.should_remove_leading_eol

        if self.line_range.start_line > self.line_range.end_line:
            # Seen as start = end + 1 for insert-before-line edits; passed through as-is
            logger.debug(
                f"Inverted line range {self.line_range.start_line}-{self.line_range.end_line}"
            )

    def finish(self) -> "DecodedSuggestion":
        """Apply the leading-newline rule; called once, on done_edit."""
        if self.should_remove_leading_eol and self.text.startswith("\n"):
            self.text = self.text[1:]
            logger.debug("Stripped leading newline from suggestion")
        return self


def _log_debug_payload(chunk: StreamChunk) -> None:
    if chunk.debug_model_input is not None:
        logger.debug(f"Model input: {chunk.debug_model_input}")
    if chunk.debug_model_output is not None:
        logger.debug(f"Model output: {chunk.debug_model_output}")


async def decode_next(stream: ChunkStream) -> Optional[DecodedSuggestion]:
    """
    Read the next complete suggestion from the stream.

    Returns:
        The suggestion once its done_edit arrives, or None if done_stream
        arrives first (no further suggestion).

    Raises:
        StreamDecodeError if the stream closes before either marker.
        UpstreamError if the transport fails.
    """
    current: Optional[DecodedSuggestion] = None
    chunk_count = 0

    while True:
        chunk = await stream.receive()
        if chunk is None:
            raise StreamDecodeError(
                f"Stream ended without done_edit or done_stream after {chunk_count} chunks"
            )
        chunk_count += 1

        if chunk.has_debug:
            _log_debug_payload(chunk)

        if chunk.range_to_replace is not None:
            if current is None:
                current = DecodedSuggestion()
            current.apply_range_chunk(chunk)

        if chunk.text:
            if current is None:
                current = DecodedSuggestion()
            current.text += chunk.text

        if chunk.is_done_edit:
            # A range-only edit legitimately has empty text
            if current is None:
                current = DecodedSuggestion()
            suggestion = current.finish()
            logger.debug(
                f"Decoded suggestion: {len(suggestion.text)} chars, "
                f"range={suggestion.line_range}, chunks={chunk_count}"
            )
            return suggestion

        if chunk.is_done_stream:
            logger.debug("Stream done, no further suggestion")
            return None


async def decode_all(stream: ChunkStream) -> list[DecodedSuggestion]:
    """
    Drain a whole stream into a list of suggestions.

    Stops at done_stream, or when the transport closes cleanly after at
    least one complete suggestion.
    """
    suggestions: list[DecodedSuggestion] = []
    while True:
        try:
            suggestion = await decode_next(stream)
        except StreamDecodeError:
            if suggestions:
                logger.warning(f"Stream closed without done_stream after {len(suggestions)} suggestions")
                break
            raise
        if suggestion is None:
            break
        suggestions.append(suggestion)
    logger.info(f"Decoded {len(suggestions)} suggestions from stream")
    return suggestions
