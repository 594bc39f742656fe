"""
SuggestionOrchestrator - one StreamCpp call per keystroke, many suggestions.

The first suggestion is returned on the request path as soon as it is
decoded. If the stream announces another one, the still-open stream is handed
to a background chain task that decodes the rest into the SuggestionStore,
each entry linking to the next by ID. The editor then walks the chain with
fetch-by-id calls served from memory.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from cursor_tab.adapters.base import ChunkStream, CompletionBackend
from cursor_tab.adapters.schema import (
    CppIntentInfo,
    CurrentFileInfo,
    CursorPosition,
    StreamCppRequest,
)
from cursor_tab.config import (
    CLIENT_NOT_INITIALIZED_MESSAGE,
    END_OF_LINE,
    NO_SUGGESTIONS_MESSAGE,
    NOT_FOUND_MESSAGE,
    SUGGESTION_ID_PREFIX,
    NewSuggestionRequest,
    RangeInfo,
    Suggestion,
    SuggestionResponse,
)
from cursor_tab.decoder import DecodedSuggestion, LineRange, decode_next
from cursor_tab.errors import CursorTabError
from cursor_tab.store import SuggestionStore

logger = logging.getLogger(__name__)


# Type for cancellation check function
CancellationCheck = Callable[[], bool]


def generate_suggestion_id() -> str:
    """Random, collision-resistant suggestion ID."""
    return f"{SUGGESTION_ID_PREFIX}{uuid.uuid4()}"


def build_stream_request(request: NewSuggestionRequest) -> StreamCppRequest:
    """Translate an editor request into a StreamCpp request."""
    return StreamCppRequest(
        current_file=CurrentFileInfo(
            contents=request.file_contents,
            relative_workspace_path=request.file_path,
            language_id=request.language_id,
            total_number_of_lines=request.total_lines,
            workspace_root_path=request.workspace_path,
            cursor_position=CursorPosition(line=request.line, column=request.column),
        ),
        cpp_intent_info=CppIntentInfo(source="typing"),
    )


def synthesize_range(
    line_range: Optional[LineRange],
    cursor_line: int,
    cursor_column: int,
) -> Optional[RangeInfo]:
    """
    Add column bounds to a wire line range.

    The wire carries lines only. A single-line range on the cursor's line
    covers column 0 up to the cursor; anything else runs to END_OF_LINE.
    cursor_line is 0-based, range lines are 1-based.
    """
    if line_range is None:
        return None

    single_line_at_cursor = (
        line_range.start_line == line_range.end_line
        and line_range.start_line - 1 == cursor_line
    )
    return RangeInfo(
        start_line=line_range.start_line,
        start_column=0,
        end_line=line_range.end_line,
        end_column=cursor_column if single_line_at_cursor else END_OF_LINE,
    )


def to_suggestion(
    decoded: DecodedSuggestion,
    cursor_line: int,
    cursor_column: int,
    next_suggestion_id: Optional[str] = None,
) -> Suggestion:
    return Suggestion(
        text=decoded.text,
        range=synthesize_range(decoded.line_range, cursor_line, cursor_column),
        binding_id=decoded.binding_id,
        should_remove_leading_eol=decoded.should_remove_leading_eol,
        next_suggestion_id=next_suggestion_id,
    )


async def peek_has_more(stream: ChunkStream) -> bool:
    """
    Read the chunk after a done_edit.

    begin_edit means another suggestion follows. done_stream, a closed
    stream, or anything else means there is nothing more to read.
    """
    chunk = await stream.receive()
    if chunk is None:
        logger.debug("Stream closed after suggestion")
        return False
    if chunk.is_begin_edit:
        return True
    if not chunk.is_done_stream:
        logger.warning(f"Unexpected chunk after done_edit, ending chain: {chunk.to_wire()}")
    return False


# ─────────────────────────────────────────────────────────────────────
# CHAIN REGISTRY
# ─────────────────────────────────────────────────────────────────────

@dataclass
class ChainTask:
    """A running background chain, the stream it owns and its cancellation signal."""
    first_id: str
    stream: Optional[ChunkStream] = None
    task: Optional[asyncio.Task] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def should_cancel(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Signal the chain and interrupt it if it is waiting on the stream."""
        self.cancel_event.set()
        if self.task is not None and not self.task.done():
            self.task.cancel()


class ChainRegistry:
    """
    Tracks background chain tasks by their first suggestion ID.

    Chains run fire-and-forget; the registry keeps a handle so they can be
    cancelled on shutdown or individually.
    """

    def __init__(self):
        self._chains: dict[str, ChainTask] = {}

    def register(self, chain: ChainTask) -> None:
        self._chains[chain.first_id] = chain
        if chain.task is not None:
            chain.task.add_done_callback(lambda task: self._on_done(chain, task))

    def _on_done(self, chain: ChainTask, task: asyncio.Task) -> None:
        self._chains.pop(chain.first_id, None)
        # A task cancelled before its first step never runs its own cleanup
        if task.cancelled() and chain.stream is not None:
            asyncio.ensure_future(chain.stream.aclose())

    def cancel(self, first_id: str) -> bool:
        chain = self._chains.get(first_id)
        if chain is None:
            return False
        chain.cancel()
        return True

    def active_ids(self) -> list[str]:
        return list(self._chains)

    async def join(self) -> None:
        """Wait for every running chain to finish."""
        tasks = [c.task for c in self._chains.values() if c.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every chain, wait for them to exit and close their streams."""
        chains = list(self._chains.values())
        for chain in chains:
            chain.cancel()
        await self.join()
        for chain in chains:
            if chain.stream is not None:
                await chain.stream.aclose()

    def __len__(self) -> int:
        return len(self._chains)


# ─────────────────────────────────────────────────────────────────────
# ORCHESTRATOR
# ─────────────────────────────────────────────────────────────────────

class SuggestionOrchestrator:
    """
    Drives the decoder for new-suggestion requests and serves fetch-by-id.

    Errors on the request path are turned into SuggestionResponse.error;
    errors in a background chain are logged and end that chain.
    """

    def __init__(
        self,
        backend: Optional[CompletionBackend],
        store: SuggestionStore,
        chains: Optional[ChainRegistry] = None,
    ):
        self.backend = backend
        self.store = store
        self.chains = chains if chains is not None else ChainRegistry()

    async def request_new(self, request: NewSuggestionRequest) -> SuggestionResponse:
        """
        Issue StreamCpp and return the first suggestion.

        Raises:
            UpstreamError if the call cannot be opened.
            StreamDecodeError if the stream breaks before the first suggestion.
            asyncio.CancelledError if the caller goes away; the stream is
            closed and nothing is stored.
        """
        if self.backend is None:
            return SuggestionResponse.failure(CLIENT_NOT_INITIALIZED_MESSAGE)

        stream = await self.backend.stream_cpp(build_stream_request(request))
        handed_off = False
        try:
            decoded = await decode_next(stream)
            if decoded is None:
                logger.info("Stream returned no suggestions")
                return SuggestionResponse.failure(NO_SUGGESTIONS_MESSAGE)

            next_id: Optional[str] = None
            if await peek_has_more(stream):
                next_id = generate_suggestion_id()
                self._start_chain(stream, next_id, request.line, request.column)
                handed_off = True

            suggestion = to_suggestion(decoded, request.line, request.column, next_id)
            logger.info(
                f"Returning first suggestion: {len(suggestion.text)} chars, "
                f"{suggestion.text.count(chr(10)) + 1} lines, range={suggestion.range}, "
                f"next={next_id or '-'}"
            )
            logger.debug(f"Suggestion text: {suggestion.text!r}")
            return SuggestionResponse.from_suggestion(suggestion)
        finally:
            if not handed_off:
                await stream.aclose()

    async def fetch(self, suggestion_id: str) -> SuggestionResponse:
        """Take a stored suggestion; a second fetch of the same ID is not found."""
        suggestion = await self.store.take(suggestion_id)
        if suggestion is None:
            logger.warning(f"Suggestion not found in store: {suggestion_id}")
            return SuggestionResponse.failure(NOT_FOUND_MESSAGE)

        logger.info(
            f"Returning stored suggestion {suggestion_id}: {len(suggestion.text)} chars, "
            f"next={suggestion.next_suggestion_id or '-'}"
        )
        logger.debug(f"Store holds {len(self.store)} suggestions after take")
        return SuggestionResponse.from_suggestion(suggestion)

    def _start_chain(
        self,
        stream: ChunkStream,
        first_id: str,
        cursor_line: int,
        cursor_column: int,
    ) -> ChainTask:
        chain = ChainTask(first_id=first_id, stream=stream)
        chain.task = asyncio.create_task(
            self.materialize_chain(
                stream,
                first_id,
                cursor_line,
                cursor_column,
                should_cancel=chain.should_cancel,
            ),
            name=f"chain-{first_id}",
        )
        self.chains.register(chain)
        logger.debug(f"More suggestions detected, background chain started at {first_id}")
        return chain

    async def materialize_chain(
        self,
        stream: ChunkStream,
        first_id: str,
        cursor_line: int,
        cursor_column: int,
        should_cancel: Optional[CancellationCheck] = None,
    ) -> int:
        """
        Decode the rest of a stream into the store.

        The stream must be positioned just past a begin_edit. Each suggestion
        is stored under the ID already advertised for it, with
        next_suggestion_id set before storing. Failures end the chain; what
        was stored stays retrievable.

        Returns:
            Number of suggestions stored.
        """
        current_id = first_id
        count = 0
        try:
            while True:
                if should_cancel and should_cancel():
                    logger.info(f"Background chain cancelled after {count} suggestions")
                    return count

                decoded = await decode_next(stream)
                if decoded is None:
                    break

                next_id = generate_suggestion_id() if await peek_has_more(stream) else None
                if should_cancel and should_cancel():
                    logger.info(f"Background chain cancelled after {count} suggestions")
                    return count

                suggestion = to_suggestion(decoded, cursor_line, cursor_column, next_id)
                await self.store.put(current_id, suggestion)
                count += 1
                logger.info(
                    f"Stored background suggestion {current_id}: "
                    f"{len(suggestion.text)} chars, next={next_id or '-'}"
                )
                logger.debug(f"Store holds {len(self.store)} suggestions")

                if next_id is None:
                    break
                current_id = next_id
        except CursorTabError as e:
            logger.error(f"Background chain failed after {count} suggestions: {e}")
            return count
        except asyncio.CancelledError:
            logger.info(f"Background chain task cancelled after {count} suggestions")
            raise
        except Exception:
            logger.exception(f"Background chain crashed after {count} suggestions")
            return count
        finally:
            await stream.aclose()

        logger.info(f"Background chain complete: {count} suggestions stored")
        return count
