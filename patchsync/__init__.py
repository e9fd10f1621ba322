"""Incremental mirroring of remote, append-only patch lists.

Parses a remote patch list, resumes after the last applied patch id and
downloads the rest in order, verifying each file against an optional
checksum manifest before advancing the local state.
"""

from .engine import SourceContext, SourceResult, SyncEngine, SyncStatus
from .fetcher import Fetcher, HttpFetcher
from .index import PatchEntry, parse_patch_list, select_pending
from .manifest import ChecksumManifest, ChecksumRecord
from .state import load_state, save_state

__all__ = [
    "ChecksumManifest",
    "ChecksumRecord",
    "Fetcher",
    "HttpFetcher",
    "PatchEntry",
    "SourceContext",
    "SourceResult",
    "SyncEngine",
    "SyncStatus",
    "load_state",
    "parse_patch_list",
    "save_state",
    "select_pending",
]
