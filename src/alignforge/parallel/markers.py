"""Completion markers.

A completion marker is a file named ``done`` in the directory whose
work it vouches for. Only its existence matters; the content is a
human-readable note.
"""

from __future__ import annotations

import time
from pathlib import Path

DONE_FILENAME = "done"


def done_path(directory: Path | str) -> Path:
    """Return the marker path for a directory."""
    return Path(directory) / DONE_FILENAME


def is_done(marker: Path | str) -> bool:
    """Check whether a marker file exists."""
    return Path(marker).is_file()


def write_done(marker: Path | str, timestamp: bool = False) -> Path:
    """Create a marker file.

    Args:
        marker: Marker file path.
        timestamp: Append the current unix time to the note.

    Returns:
        The marker path.
    """
    marker = Path(marker)
    note = f"done {int(time.time())}\n" if timestamp else "done\n"
    marker.write_text(note)
    return marker
