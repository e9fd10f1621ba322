"""Parser for the remote patch list feed.

The feed is plain text with one entry per line::

    // comments start with two slashes
    1200 2024-01-02data.gpf
    1201 2024-01-09data.gpf

Each entry is a run of decimal digits (the patch id) followed by the file
name. Whitespace inside the file name is dropped. Lines that don't fit this
shape are skipped without failing the whole feed.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DIGITS = "0123456789"


@dataclass(frozen=True)
class PatchEntry:
    """One versioned file offered by a remote source."""

    id: int
    filename: str


def detect_line_ending(text: str) -> str:
    """Return ``\\r\\n`` if the feed uses it anywhere, else ``\\n``."""
    if "\r\n" in text:
        return "\r\n"
    return "\n"


def parse_line(line: str) -> PatchEntry | None:
    """Parse a single feed line.

    Args:
        line: Raw line without its terminator.

    Returns:
        A PatchEntry, or None for comments, blank and malformed lines.
    """
    line = line.strip()

    if line.startswith("//"):
        return None

    i = 0
    while i < len(line) and line[i] in DIGITS:
        i += 1

    if i == 0:
        return None

    patch_id = int(line[:i])
    filename = "".join(ch for ch in line[i:] if not ch.isspace())

    if not filename:
        return None

    return PatchEntry(id=patch_id, filename=filename)


def parse_patch_list(text: str) -> Iterator[PatchEntry]:
    """Lazily parse a patch list feed into entries, in feed order.

    Args:
        text: The whole feed as text.

    Yields:
        PatchEntry for every well-formed line.
    """
    eol = detect_line_ending(text)

    for lineno, line in enumerate(text.split(eol), start=1):
        entry = parse_line(line)
        if entry is None:
            if line.strip() and not line.strip().startswith("//"):
                logger.debug(f"Skipping malformed patch list line {lineno}: {line!r}")
            continue
        yield entry


def select_pending(entries: Iterable[PatchEntry], last_id: int) -> list[PatchEntry]:
    """Select the entries still to be applied.

    Scans for the first entry whose id is greater than ``last_id`` and
    returns it together with everything after it, in feed order.

    Args:
        entries: Parsed entries in feed order.
        last_id: Highest patch id already applied.

    Returns:
        The pending suffix, empty when the source is up to date.
    """
    entries = list(entries)
    for i, entry in enumerate(entries):
        if entry.id > last_id:
            return entries[i:]
    return []
