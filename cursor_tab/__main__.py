"""
Run the cursor-tab server.

Usage:
    python -m cursor_tab [serve|suggest] ...
"""

from cursor_tab.cli import main

if __name__ == "__main__":
    main()
