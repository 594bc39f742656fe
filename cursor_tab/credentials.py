"""
Credential lookup for the StreamCpp service.

The access token lives in the Cursor application's global state database
(a SQLite file with a single key/value ItemTable). The client version is read
from the installed application's package.json.
"""

import json
import logging
import os
import sqlite3
import sys
from pathlib import Path
from typing import Optional

from cursor_tab.config import DEFAULT_CLIENT_VERSION
from cursor_tab.errors import CredentialsError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "cursorAuth/accessToken"


def default_state_db_path() -> Path:
    """Platform location of Cursor's state.vscdb."""
    home = Path.home()
    if sys.platform == "darwin":
        base = home / "Library" / "Application Support"
    elif os.name == "nt":
        base = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", home / ".config"))
    return base / "Cursor" / "User" / "globalStorage" / "state.vscdb"


def default_package_json_path() -> Path:
    """Platform location of the installed Cursor package.json."""
    if sys.platform == "darwin":
        return Path("/Applications/Cursor.app/Contents/Resources/app/package.json")
    if os.name == "nt":
        local = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return local / "Programs" / "cursor" / "resources" / "app" / "package.json"
    return Path("/usr/share/cursor/resources/app/package.json")


def get_state_db_path() -> Path:
    """State DB path from CURSOR_STATE_DB, or the platform default."""
    override = os.environ.get("CURSOR_STATE_DB")
    if override:
        return Path(override).expanduser()
    return default_state_db_path()


def read_state_value(db_path: Path, key: str) -> Optional[str]:
    """Look up one key in the ItemTable of a state DB. Returns None if absent."""
    if not db_path.exists():
        raise CredentialsError(f"Cursor state database not found: {db_path}")

    try:
        # Read-only: the editor may hold the file open
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error as e:
        raise CredentialsError(f"Cannot open {db_path}: {e}") from e

    try:
        row = conn.execute(
            "SELECT value FROM ItemTable WHERE key = ?", (key,)
        ).fetchone()
    except sqlite3.Error as e:
        raise CredentialsError(f"Cannot read {key} from {db_path}: {e}") from e
    finally:
        conn.close()

    if row is None or row[0] is None:
        return None
    value = row[0]
    if isinstance(value, bytes):
        value = value.decode("utf-8", "ignore")
    return str(value).strip()


def get_access_token() -> str:
    """
    Get the bearer token for StreamCpp.

    CURSOR_ACCESS_TOKEN takes precedence over the state database.

    Raises:
        CredentialsError if no token can be found.
    """
    token = os.environ.get("CURSOR_ACCESS_TOKEN", "").strip()
    if token:
        return token

    db_path = get_state_db_path()
    token = read_state_value(db_path, ACCESS_TOKEN_KEY)
    if not token:
        raise CredentialsError(f"No access token stored in {db_path} (are you logged into Cursor?)")
    logger.debug(f"Loaded access token from {db_path}")
    return token


def get_client_version(package_json: Optional[Path] = None) -> str:
    """
    Get the client version sent in x-cursor-client-version.

    Order: CURSOR_CLIENT_VERSION, the installed app's package.json,
    then DEFAULT_CLIENT_VERSION. Never raises.
    """
    override = os.environ.get("CURSOR_CLIENT_VERSION", "").strip()
    if override:
        return override

    path = package_json or default_package_json_path()
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError):
        return DEFAULT_CLIENT_VERSION

    version = data.get("version") if isinstance(data, dict) else None
    return version or DEFAULT_CLIENT_VERSION
