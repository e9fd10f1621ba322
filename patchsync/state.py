"""Persisted resume state: the id of the last fully applied patch.

The state file holds a single decimal number as plain text. Writes go to a
temporary sibling file which is fsynced and then renamed over the target,
so a reader sees either the old value or the new one.
"""

import logging
import os
import re
from pathlib import Path

from .errors import WriteFailed

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_state(content: str) -> int:
    """Parse state file content permissively.

    Leading whitespace, an optional sign and the leading digits are used;
    anything else (including empty content) parses as 0. Negative values
    clamp to 0.
    """
    match = _LEADING_INT.match(content)
    if not match:
        return 0
    return max(int(match.group(1)), 0)


def load_state(path: str | Path) -> int:
    """Read the last applied patch id.

    Args:
        path: Path to the state file.

    Returns:
        The stored id, or 0 if the file doesn't exist yet.
    """
    path = Path(path)
    if not path.exists():
        return 0

    content = path.read_text(encoding="utf-8", errors="replace")
    value = parse_state(content)

    if value == 0 and content.strip() and content.strip() not in ("0", "+0", "-0"):
        logger.warning(f"State file {path} has unexpected content {content[:32]!r}, using 0")

    return value


def atomic_write_bytes(path: str | Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` via write, fsync and rename.

    Raises:
        WriteFailed: If the temporary file can't be written or renamed.
    """
    path = Path(path)
    temp_path = path.with_name(f".{path.name}.tmp")

    try:
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except ValueError as e:
        # Embedded NUL, nothing was created
        raise WriteFailed(f"Failed to write {path}: {e}") from e
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise WriteFailed(f"Failed to write {path}: {e}") from e


def save_state(path: str | Path, patch_id: int) -> None:
    """Persist the last applied patch id.

    Args:
        path: Path to the state file.
        patch_id: Id of the entry whose bytes are already on disk.

    Raises:
        WriteFailed: If the state can't be written.
    """
    try:
        atomic_write_bytes(path, str(patch_id).encode("ascii"))
    except WriteFailed as e:
        raise WriteFailed(f"Failed to write patch state: {e}") from e
