"""cursor-tab: local relay between an editor and Cursor's StreamCpp completion service."""

__version__ = "0.1.0"
