"""Exception hierarchy for cursor-tab."""


class CursorTabError(Exception):
    """Base class for all cursor-tab errors."""
    pass


class UpstreamError(CursorTabError):
    """The StreamCpp call failed: connection, HTTP status, error trailer, or transport."""
    pass


class StreamDecodeError(CursorTabError):
    """Upstream chunk sequence was malformed or ended without a terminal marker."""
    pass


class CredentialsError(CursorTabError):
    """Access token could not be located."""
    pass
