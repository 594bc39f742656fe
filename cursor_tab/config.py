"""
Configuration constants and Pydantic models for cursor-tab.
"""

import os
from pydantic import BaseModel, ConfigDict
from typing import Optional


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_API_BASE_URL: str = "https://api4.cursor.sh"
DEFAULT_CLIENT_VERSION: str = "0.45.0"
DEFAULT_LOG_FILE: str = "/tmp/cursor-tab.log"
DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 30.0
DEFAULT_UPSTREAM_TIMEOUT_SECONDS: float = 60.0


# ─────────────────────────────────────────────────────────────────────
# INTERNAL CONSTANTS
# ─────────────────────────────────────────────────────────────────────

SERVER_HOST: str = "127.0.0.1"
SUGGESTION_ID_PREFIX: str = "sugg_"

# Column value meaning "through the end of the line"
END_OF_LINE: int = -1

NO_SUGGESTIONS_MESSAGE: str = "no suggestions returned"
NOT_FOUND_MESSAGE: str = "suggestion not found"
CLIENT_NOT_INITIALIZED_MESSAGE: str = "cursor client not initialized"


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_api_base_url() -> str:
    """
    Get the upstream API base URL.

    Set CURSOR_API_BASE_URL in .env (default: https://api4.cursor.sh).
    """
    value = os.environ.get("CURSOR_API_BASE_URL", "").strip()
    return (value or DEFAULT_API_BASE_URL).rstrip("/")


def get_server_port() -> int:
    """
    Get the local listening port.

    Set CURSOR_TAB_PORT in .env (default: 0, the OS assigns a free port).
    """
    try:
        return int(os.environ.get("CURSOR_TAB_PORT", "0"))
    except ValueError:
        return 0


def get_log_file() -> str:
    """Get log file path from CURSOR_TAB_LOG_FILE or default."""
    return os.environ.get("CURSOR_TAB_LOG_FILE") or DEFAULT_LOG_FILE


def get_request_timeout() -> float:
    """
    Get the time allowed for the synchronous part of a new-suggestion request.

    Set CURSOR_TAB_REQUEST_TIMEOUT in .env (default: 30).
    """
    try:
        return float(os.environ.get("CURSOR_TAB_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS))
    except ValueError:
        return DEFAULT_REQUEST_TIMEOUT_SECONDS


def get_upstream_timeout() -> float:
    """
    Get the httpx timeout used for the upstream stream.

    Set CURSOR_TAB_UPSTREAM_TIMEOUT in .env (default: 60).
    """
    try:
        return float(os.environ.get("CURSOR_TAB_UPSTREAM_TIMEOUT", DEFAULT_UPSTREAM_TIMEOUT_SECONDS))
    except ValueError:
        return DEFAULT_UPSTREAM_TIMEOUT_SECONDS


class Settings(BaseModel):
    """Runtime settings resolved once at startup."""
    api_base_url: str = DEFAULT_API_BASE_URL
    port: int = 0
    log_file: str = DEFAULT_LOG_FILE
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    upstream_timeout: float = DEFAULT_UPSTREAM_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_base_url=get_api_base_url(),
            port=get_server_port(),
            log_file=get_log_file(),
            request_timeout=get_request_timeout(),
            upstream_timeout=get_upstream_timeout(),
        )


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class RangeInfo(BaseModel):
    """Rectangular text region a suggestion replaces.

    Lines are 1-based as sent by the upstream service. end_column may be
    END_OF_LINE.
    """
    model_config = ConfigDict(frozen=True)

    start_line: int
    start_column: int = 0
    end_line: int
    end_column: int = END_OF_LINE


class Suggestion(BaseModel):
    """A complete edit suggestion, as held in the store."""
    model_config = ConfigDict(frozen=True)

    text: str = ""
    range: Optional[RangeInfo] = None
    binding_id: Optional[str] = None
    should_remove_leading_eol: bool = False
    next_suggestion_id: Optional[str] = None


class NewSuggestionRequest(BaseModel):
    """Body of POST /suggestion/new. Line and column are 0-based."""
    file_contents: str
    line: int
    column: int
    file_path: str = ""
    language_id: str = ""
    workspace_path: str = ""

    @property
    def total_lines(self) -> int:
        return len(self.file_contents.split("\n"))


class SuggestionResponse(BaseModel):
    """Response for both endpoints. Empty optional fields are omitted on the wire."""
    suggestion: str = ""
    error: Optional[str] = None
    range_replace: Optional[RangeInfo] = None
    next_suggestion_id: Optional[str] = None
    binding_id: Optional[str] = None
    should_remove_leading_eol: bool = False

    @classmethod
    def from_suggestion(cls, suggestion: Suggestion) -> "SuggestionResponse":
        return cls(
            suggestion=suggestion.text,
            range_replace=suggestion.range,
            next_suggestion_id=suggestion.next_suggestion_id,
            binding_id=suggestion.binding_id,
            should_remove_leading_eol=suggestion.should_remove_leading_eol,
        )

    @classmethod
    def failure(cls, message: str) -> "SuggestionResponse":
        return cls(error=message)

    def to_wire(self) -> dict:
        """Serialize, dropping empty optional fields (suggestion is always present)."""
        data = self.model_dump(exclude_none=True)
        if not data.get("should_remove_leading_eol"):
            data.pop("should_remove_leading_eol", None)
        if not data.get("next_suggestion_id"):
            data.pop("next_suggestion_id", None)
        if not data.get("binding_id"):
            data.pop("binding_id", None)
        return data
