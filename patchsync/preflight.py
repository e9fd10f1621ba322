"""Checks run before syncing: local output directories and remote URIs."""

import logging
import os

from .config import SourceConfig
from .fetcher import Fetcher

logger = logging.getLogger(__name__)


def check_output_dir(source: SourceConfig) -> list[str]:
    """Check that the output directory exists and is usable."""
    path = source.output_dir

    if not path.exists():
        return [f"output directory '{path}' doesn't exist"]
    if not path.is_dir():
        return [f"output directory '{path}' is not a directory"]
    if not os.access(path, os.R_OK | os.W_OK):
        return [f"output directory '{path}' is not readable/writable"]

    return []


async def preflight_source(source: SourceConfig, fetcher: Fetcher) -> list[str]:
    """Validate one source.

    Args:
        source: Source to validate.
        fetcher: Transport used to check the remote URIs.

    Returns:
        Human-readable problems, empty if the source is ready to sync.
    """
    problems = check_output_dir(source)

    for label, uri in (("patch list", source.patch_list), ("patch directory", source.patch_dir)):
        found, error = await fetcher.exists(uri)
        if not found:
            problems.append(f"{label} '{uri}' doesn't exist ({error})")

    for problem in problems:
        logger.error(f"[{source.name}] {problem}", extra={"source": source.name})

    return problems


async def preflight(sources: list[SourceConfig], fetcher: Fetcher) -> dict[str, list[str]]:
    """Validate every source.

    Returns:
        Mapping of source name to its problems (empty list when fine).
    """
    results = {}
    for source in sources:
        results[source.name] = await preflight_source(source, fetcher)
    return results
