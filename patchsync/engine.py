"""Synchronization engine for mirroring remote patch sequences.

For each source the engine resolves the resume point from the local state
file, selects the pending suffix of the remote patch list and applies it
strictly in order: fetch with a fixed attempt cap, verify against the
checksum manifest when one is configured, write the file, then advance the
state. The state is only advanced once the file is on disk, so an
interrupted run repeats at most the entry that was in flight.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .config import SourceConfig
from .errors import (
    ConfigInvalid,
    FailureReason,
    IndexFetchFailed,
    ManifestFetchFailed,
    PatchFetchExhausted,
    SyncError,
    WriteFailed,
)
from .fetcher import Fetcher
from .index import PatchEntry, parse_patch_list, select_pending
from .manifest import ChecksumManifest
from .state import atomic_write_bytes, load_state, save_state

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class SyncStatus(Enum):
    """Terminal state of a source run."""

    DONE = "done"
    FAILED = "failed"


@dataclass
class SourceResult:
    """Outcome of synchronizing one source."""

    source: str
    status: SyncStatus
    applied: int = 0
    pending: int = 0
    last_id: int = 0
    reason: FailureReason | None = None
    error: str | None = None
    entry: PatchEntry | None = None  # Entry in progress when the run failed
    timestamp: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.DONE

    def to_dict(self) -> dict:
        """Convert to dictionary for reporting."""
        return {
            "source": self.source,
            "status": self.status.value,
            "applied": self.applied,
            "pending": self.pending,
            "last_id": self.last_id,
            "reason": self.reason.value if self.reason else None,
            "error": self.error,
            "entry": (
                {"id": self.entry.id, "filename": self.entry.filename}
                if self.entry
                else None
            ),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class SourceContext:
    """Everything one source run works from, rebuilt on every run."""

    source: SourceConfig
    entries: list[PatchEntry]
    manifest: ChecksumManifest | None = None


class SyncEngine:
    """Applies pending patches for configured sources, one at a time."""

    def __init__(self, fetcher: Fetcher, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """Initialize the engine.

        Args:
            fetcher: Transport used for every remote request.
            max_attempts: Download attempts per patch before giving up.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.fetcher = fetcher
        self.max_attempts = max_attempts

    async def load_index(self, source: SourceConfig) -> list[PatchEntry]:
        """Download and parse the source's patch list.

        Raises:
            IndexFetchFailed: If the patch list can't be downloaded.
        """
        data, error = await self.fetcher.fetch(source.patch_list)
        if error:
            raise IndexFetchFailed(
                f"failed to download patch list '{source.patch_list}': {error}"
            )

        entries = list(parse_patch_list(data.decode("utf-8", errors="replace")))
        logger.debug(
            f"[{source.name}] Patch list has {len(entries)} entries",
            extra={"source": source.name},
        )
        return entries

    async def load_manifest(self, source: SourceConfig) -> ChecksumManifest | None:
        """Download and decode the source's checksum list, if configured.

        Raises:
            ManifestFetchFailed: If the checksum list can't be downloaded.
            ManifestDecodeFailed: If it isn't a valid manifest.
        """
        if not source.checksum_list:
            return None

        data, error = await self.fetcher.fetch(source.checksum_list)
        if error:
            raise ManifestFetchFailed(
                f"failed to download checksum list '{source.checksum_list}': {error}"
            )

        return ChecksumManifest.decode(data, algorithm=source.checksum_algorithm)

    async def fetch_with_retry(
        self,
        source: SourceConfig,
        entry: PatchEntry,
        position: int,
        total: int,
    ) -> bytes:
        """Download one patch, trying up to ``max_attempts`` times.

        Attempts follow each other immediately, without backoff.

        Raises:
            PatchFetchExhausted: If every attempt failed.
        """
        uri = source.patch_uri(entry.filename)
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                f"[{source.name}] {position}/{total} Trying to download {entry.filename} "
                f"(attempt {attempt}/{self.max_attempts})",
                extra={"source": source.name},
            )
            data, error = await self.fetcher.fetch(uri)
            if error is None:
                return data

            last_error = error
            logger.warning(
                f"[{source.name}] Download of {entry.filename} failed: {error}",
                extra={"source": source.name},
            )

        raise PatchFetchExhausted(
            f"Failed to download {entry.filename} after {self.max_attempts} attempts, "
            f"aborting ({last_error})"
        )

    def output_path(self, source: SourceConfig, filename: str) -> Path:
        """Resolve where a patch file is written.

        Raises:
            WriteFailed: If the name is unusable as a path or would land outside
                the output directory.
        """
        try:
            root = source.output_dir.resolve()
            target = (root / filename).resolve()
        except (OSError, ValueError) as e:
            raise WriteFailed(f"Invalid file name {filename!r}: {e}") from e
        if target == root or not target.is_relative_to(root):
            raise WriteFailed(f"Refusing to write {filename} outside {root}")
        return target

    def apply_entry(self, context: SourceContext, entry: PatchEntry, payload: bytes) -> None:
        """Verify, write and record one downloaded patch.

        Raises:
            ChecksumMismatch: If the payload disagrees with the manifest.
            WriteFailed: If the file or the state can't be written.
        """
        source = context.source

        if context.manifest is not None:
            if not context.manifest.verify(entry.filename, payload):
                logger.info(
                    f"[{source.name}] File {entry.filename.lower()} doesn't have an "
                    f"entry in checksum list",
                    extra={"source": source.name},
                )

        target = self.output_path(source, entry.filename)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailed(f"Failed to open {entry.filename}: {e}") from e
        atomic_write_bytes(target, payload)

        save_state(source.state_path, entry.id)

    def _load_resume_point(self, source: SourceConfig) -> int:
        try:
            return load_state(source.state_path)
        except OSError as e:
            raise ConfigInvalid(f"Failed to read patch state {source.state_path}: {e}") from e

    async def sync_source(self, source: SourceConfig) -> SourceResult:
        """Bring one source up to date.

        Args:
            source: Source to synchronize.

        Returns:
            SourceResult with DONE, or FAILED plus the reason and the entry
            that was in progress.
        """
        logger.info(f"[{source.name}] Starting to sync", extra={"source": source.name})

        last_id = 0
        applied = 0
        pending: list[PatchEntry] = []
        current: PatchEntry | None = None

        try:
            last_id = self._load_resume_point(source)
            entries = await self.load_index(source)
            pending = select_pending(entries, last_id)

            if not pending:
                logger.info(f"[{source.name}] is up-to-date", extra={"source": source.name})
                return SourceResult(
                    source=source.name,
                    status=SyncStatus.DONE,
                    last_id=last_id,
                    timestamp=datetime.now(),
                )

            context = SourceContext(
                source=source,
                entries=entries,
                manifest=await self.load_manifest(source),
            )

            logger.info(
                f"[{source.name}] Starting at patch {pending[0].id} - {pending[0].filename} "
                f"({len(pending)} patches to download)",
                extra={"source": source.name},
            )

            for position, entry in enumerate(pending, start=1):
                current = entry
                payload = await self.fetch_with_retry(source, entry, position, len(pending))
                self.apply_entry(context, entry, payload)
                last_id = entry.id
                applied += 1

        except SyncError as e:
            if current is not None:
                logger.error(
                    f"[{source.name}] {e} (patch {current.id} - {current.filename})",
                    extra={"source": source.name},
                )
            else:
                logger.error(f"[{source.name}] {e}", extra={"source": source.name})
            return SourceResult(
                source=source.name,
                status=SyncStatus.FAILED,
                applied=applied,
                pending=len(pending),
                last_id=last_id,
                reason=e.reason,
                error=str(e),
                entry=current,
                timestamp=datetime.now(),
            )

        logger.info(
            f"[{source.name}] Applied {applied} patches, now at patch {last_id}",
            extra={"source": source.name},
        )
        return SourceResult(
            source=source.name,
            status=SyncStatus.DONE,
            applied=applied,
            pending=len(pending),
            last_id=last_id,
            timestamp=datetime.now(),
        )

    async def sync_all(self, sources: list[SourceConfig]) -> list[SourceResult]:
        """Synchronize sources in order; a failed source doesn't stop the rest.

        Args:
            sources: Sources in configuration order.

        Returns:
            One SourceResult per source, in the same order.
        """
        results = []
        for source in sources:
            results.append(await self.sync_source(source))
        return results
