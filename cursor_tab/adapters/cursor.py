"""
CursorAdapter - StreamCpp over the Connect protocol (JSON codec) via httpx.

Connect server-streaming framing: every message is an envelope of one flag
byte, a 4-byte big-endian length and the JSON payload. Flag 0x02 marks the
final end-stream envelope, which carries an optional error.
"""

import json
import logging
import struct
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from cursor_tab.adapters.schema import StreamChunk, StreamCppRequest
from cursor_tab.config import DEFAULT_API_BASE_URL, DEFAULT_UPSTREAM_TIMEOUT_SECONDS
from cursor_tab.credentials import get_access_token, get_client_version
from cursor_tab.errors import StreamDecodeError, UpstreamError

logger = logging.getLogger(__name__)

STREAM_CPP_PATH = "/aiserver.v1.AiService/StreamCpp"
CONNECT_CONTENT_TYPE = "application/connect+json"

FLAG_COMPRESSED = 0x01
FLAG_END_STREAM = 0x02
ENVELOPE_HEADER_SIZE = 5


def encode_envelope(payload: bytes, flags: int = 0) -> bytes:
    """Wrap payload bytes in a Connect envelope: flags(1) + len(4) + body."""
    return struct.pack(">BI", flags, len(payload)) + payload


def parse_connect_error(body: bytes, status_code: int) -> str:
    """Extract a readable message from a Connect error body."""
    try:
        data = json.loads(body)
        if isinstance(data, dict):
            # End-stream envelopes nest the error; plain HTTP errors do not
            error = data.get("error", data)
            if isinstance(error, dict):
                code = error.get("code", "")
                message = error.get("message", "")
                if code or message:
                    return f"{code}: {message}" if code and message else (message or code)
            elif isinstance(error, str):
                return error
        return f"HTTP {status_code}: {body[:200].decode('utf-8', 'ignore')}"
    except ValueError:
        return f"HTTP {status_code}: {body[:200].decode('utf-8', 'ignore')}"


class ConnectChunkStream:
    """
    ChunkStream over an open httpx streaming response.

    Owns both the response and its client so the stream can outlive the
    request handler that opened it.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._bytes: AsyncIterator[bytes] = response.aiter_bytes()
        self._buffer = b""
        self._finished = False
        self._closed = False

    async def receive(self) -> Optional[StreamChunk]:
        while not self._finished:
            if len(self._buffer) >= ENVELOPE_HEADER_SIZE:
                flags, length = struct.unpack(">BI", self._buffer[:ENVELOPE_HEADER_SIZE])
                end = ENVELOPE_HEADER_SIZE + length
                if len(self._buffer) >= end:
                    payload = self._buffer[ENVELOPE_HEADER_SIZE:end]
                    self._buffer = self._buffer[end:]
                    chunk = self._handle_envelope(flags, payload)
                    if chunk is not None:
                        return chunk
                    continue

            try:
                data = await self._bytes.__anext__()
            except StopAsyncIteration:
                self._finished = True
                if self._buffer:
                    raise UpstreamError(
                        f"StreamCpp connection closed mid-frame ({len(self._buffer)} bytes buffered)"
                    )
                return None
            except httpx.HTTPError as e:
                self._finished = True
                raise UpstreamError(f"StreamCpp transport error: {e}") from e
            self._buffer += data

        return None

    def _handle_envelope(self, flags: int, payload: bytes) -> Optional[StreamChunk]:
        if flags & FLAG_COMPRESSED:
            self._finished = True
            raise UpstreamError("StreamCpp sent a compressed frame; compression was not negotiated")

        if flags & FLAG_END_STREAM:
            self._finished = True
            if payload.strip():
                try:
                    trailer = json.loads(payload)
                except ValueError:
                    trailer = {}
                if isinstance(trailer, dict) and trailer.get("error"):
                    raise UpstreamError(
                        f"StreamCpp error: {parse_connect_error(payload, self._response.status_code)}"
                    )
            logger.debug("StreamCpp end-stream frame received")
            return None

        try:
            return StreamChunk.model_validate_json(payload)
        except ValidationError as e:
            self._finished = True
            raise StreamDecodeError(f"Malformed StreamCpp chunk: {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._finished = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class CursorAdapter:
    """
    Cursor implementation of CompletionBackend.

    Opens one httpx client per StreamCpp call; the returned stream owns it.
    """

    def __init__(
        self,
        access_token: str,
        client_version: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS,
    ):
        if not access_token:
            raise ValueError("Cursor access token required.")
        self._access_token = access_token
        self._client_version = client_version
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    @classmethod
    def from_environment(
        cls,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout_seconds: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS,
    ) -> "CursorAdapter":
        """
        Build an adapter from locally stored credentials.

        Raises:
            CredentialsError if no access token is available.
        """
        return cls(
            access_token=get_access_token(),
            client_version=get_client_version(),
            base_url=base_url,
            timeout_seconds=timeout_seconds,
        )

    @property
    def url(self) -> str:
        return f"{self._base_url}{STREAM_CPP_PATH}"

    def _headers(self) -> dict[str, str]:
        return {
            "authorization": f"Bearer {self._access_token}",
            "x-cursor-client-version": self._client_version,
            "content-type": CONNECT_CONTENT_TYPE,
            "connect-protocol-version": "1",
        }

    async def stream_cpp(self, request: StreamCppRequest) -> ConnectChunkStream:
        """Open a StreamCpp call and return the live chunk stream."""
        body = encode_envelope(json.dumps(request.to_wire()).encode("utf-8"))

        client = httpx.AsyncClient(timeout=self._timeout)
        http_request = client.build_request("POST", self.url, content=body, headers=self._headers())
        try:
            response = await client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise UpstreamError(f"Failed to call StreamCpp: {e}") from e
        except BaseException:
            # Cancelled while connecting; the caller never sees a stream to close
            await client.aclose()
            raise

        if response.status_code >= 400:
            try:
                error_body = await response.aread()
            finally:
                await response.aclose()
                await client.aclose()
            raise UpstreamError(
                f"StreamCpp error: {parse_connect_error(error_body, response.status_code)}"
            )

        logger.debug(f"StreamCpp stream opened ({response.status_code})")
        return ConnectChunkStream(client, response)
