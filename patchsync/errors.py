"""Failure taxonomy for a synchronization run.

Every failure inside one source's run is fatal for that source only. The
engine raises these while working through a source and converts them into
a ``SourceResult`` at the ``sync_source`` boundary.

A malformed state file is intentionally absent here: it loads as id 0.
"""

from enum import Enum


class FailureReason(Enum):
    """Why a source ended in the FAILED state."""

    CONFIG_INVALID = "config_invalid"
    INDEX_FETCH_FAILED = "index_fetch_failed"
    MANIFEST_FETCH_FAILED = "manifest_fetch_failed"
    MANIFEST_DECODE_FAILED = "manifest_decode_failed"
    PATCH_FETCH_EXHAUSTED = "patch_fetch_exhausted"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    WRITE_FAILED = "write_failed"


class SyncError(Exception):
    """Base class for fatal per-source failures.

    Subclasses set ``reason``; the base class has none.
    """

    reason: FailureReason | None = None


class ConfigInvalid(SyncError):
    reason = FailureReason.CONFIG_INVALID


class IndexFetchFailed(SyncError):
    reason = FailureReason.INDEX_FETCH_FAILED


class ManifestFetchFailed(SyncError):
    reason = FailureReason.MANIFEST_FETCH_FAILED


class ManifestDecodeFailed(SyncError):
    reason = FailureReason.MANIFEST_DECODE_FAILED


class PatchFetchExhausted(SyncError):
    reason = FailureReason.PATCH_FETCH_EXHAUSTED


class WriteFailed(SyncError):
    reason = FailureReason.WRITE_FAILED


class ChecksumMismatch(SyncError):
    """Downloaded bytes disagree with the manifest record."""

    reason = FailureReason.CHECKSUM_MISMATCH

    def __init__(
        self,
        filename: str,
        expected_hash: str,
        actual_hash: str,
        expected_size: int,
        actual_size: int,
    ):
        self.filename = filename
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        self.expected_size = expected_size
        self.actual_size = actual_size

        if expected_hash != actual_hash:
            message = (
                f"File {filename} doesn't match checksum {expected_hash} "
                f"calculated checksum {actual_hash}"
            )
        else:
            message = (
                f"File {filename} size doesn't match {expected_size} "
                f"downloaded size {actual_size}"
            )
        super().__init__(message)
