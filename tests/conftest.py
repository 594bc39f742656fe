"""Shared test fixtures for cursor-tab tests."""

import pytest

from stream_mock import rng, text


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_BASE_URL = "https://cursor.test"
MOCK_TOKEN = "test-token-123"
MOCK_CLIENT_VERSION = "0.45.0"

MOCK_FILE_CONTENTS = (
    "def add(a, b):\n"
    "    return a + b\n"
    "\n"
    "def sub(a, b):\n"
    "    ret\n"
)

MOCK_REQUEST = {
    "file_contents": MOCK_FILE_CONTENTS,
    "line": 4,
    "column": 7,
    "file_path": "math_utils.py",
    "language_id": "python",
    "workspace_path": "/home/user/project",
}


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Data Models
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_request_body():
    """Return a new-suggestion request body as the editor sends it."""
    return dict(MOCK_REQUEST)


@pytest.fixture
def new_request():
    """Return a parsed NewSuggestionRequest."""
    from cursor_tab.config import NewSuggestionRequest
    return NewSuggestionRequest(**MOCK_REQUEST)


@pytest.fixture
def store():
    from cursor_tab.store import SuggestionStore
    return SuggestionStore()


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Chunk sequences
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def first_unit():
    """Edit unit replacing line 5 with a completed return."""
    return [rng(5, 5, binding_id="bind-1"), text("    return a - b")]


@pytest.fixture
def second_unit():
    """Edit unit appending a new function after line 5."""
    return [rng(6, 6, binding_id="bind-2"), text("\ndef mul(a, b):\n"), text("    return a * b")]


@pytest.fixture
def third_unit():
    return [rng(8, 8), text("# end")]
