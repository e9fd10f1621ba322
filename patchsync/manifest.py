"""Checksum manifest used to verify downloaded patches.

The manifest is a JSON object keyed by file name::

    {"2024-01-02data.gpf": {"hash": "9e107d9d372bb6826bd81d3542a419d6", "size": 1024}}

Remote manifests are known to differ in case from the patch list, so keys
are lowercased when decoded and lookups lowercase the requested name.
"""

import hashlib
import json
import logging
from dataclasses import dataclass

from .errors import ChecksumMismatch, ConfigInvalid, ManifestDecodeFailed

logger = logging.getLogger(__name__)


def check_algorithm(name: str) -> str:
    """Make sure ``name`` is a fixed-length hashlib digest.

    Raises:
        ConfigInvalid: If hashlib doesn't provide it. Variable-length
            digests (shake_*) are rejected too.
    """
    try:
        hasher = hashlib.new(name)
    except (ValueError, TypeError) as e:
        raise ConfigInvalid(f"Unsupported checksum algorithm {name!r}: {e}") from e
    if not hasher.digest_size:
        raise ConfigInvalid(f"Unsupported checksum algorithm {name!r}: variable-length digest")
    return name


@dataclass(frozen=True)
class ChecksumRecord:
    """Expected digest and size of one patch file."""

    filename: str
    hash: str
    size: int


class ChecksumManifest:
    """Per-source mapping from file name to its ChecksumRecord."""

    def __init__(self, records: dict[str, ChecksumRecord], algorithm: str = "md5"):
        """Initialize the manifest.

        Args:
            records: Records keyed by lowercase file name.
            algorithm: hashlib algorithm name used for digests.

        Raises:
            ConfigInvalid: If the algorithm isn't available.
        """
        self._records = records
        self.algorithm = check_algorithm(algorithm)

    @classmethod
    def decode(cls, data: bytes | str, algorithm: str = "md5") -> "ChecksumManifest":
        """Decode manifest bytes.

        Args:
            data: Raw manifest document.
            algorithm: hashlib algorithm name used for digests.

        Returns:
            The decoded ChecksumManifest.

        Raises:
            ManifestDecodeFailed: If the document is not a JSON object of
                ``{"hash": str, "size": int}`` values.
        """
        try:
            document = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise ManifestDecodeFailed(f"failed to decode checksum list: {e}") from e

        if not isinstance(document, dict):
            raise ManifestDecodeFailed(
                f"checksum list must be an object, got {type(document).__name__}"
            )

        records: dict[str, ChecksumRecord] = {}
        for filename, value in document.items():
            if not isinstance(value, dict):
                raise ManifestDecodeFailed(f"checksum entry for {filename} is not an object")

            digest = value.get("hash")
            size = value.get("size")
            if not isinstance(digest, str):
                raise ManifestDecodeFailed(f"checksum entry for {filename} has no hash")
            # bool is an int subclass, reject it explicitly
            if not isinstance(size, int) or isinstance(size, bool) or size < 0:
                raise ManifestDecodeFailed(f"checksum entry for {filename} has no valid size")

            key = filename.lower()
            records[key] = ChecksumRecord(filename=key, hash=digest.lower(), size=size)

        logger.debug(f"Decoded checksum list with {len(records)} entries")
        return cls(records, algorithm=algorithm)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, filename: str) -> bool:
        return filename.lower() in self._records

    def lookup(self, filename: str) -> ChecksumRecord | None:
        """Find the record for a file name, ignoring case."""
        return self._records.get(filename.lower())

    def digest(self, payload: bytes) -> str:
        return hashlib.new(self.algorithm, payload).hexdigest()

    def verify(self, filename: str, payload: bytes) -> bool:
        """Check downloaded bytes against the manifest.

        Args:
            filename: File name as it appears in the patch list.
            payload: Downloaded bytes.

        Returns:
            True if a record exists and matches, False if there is no
            record for this file (nothing to verify).

        Raises:
            ChecksumMismatch: If the digest or the size differ.
        """
        record = self.lookup(filename)
        if record is None:
            return False

        actual_hash = self.digest(payload)
        actual_size = len(payload)

        if actual_hash != record.hash or actual_size != record.size:
            raise ChecksumMismatch(
                filename=filename,
                expected_hash=record.hash,
                actual_hash=actual_hash,
                expected_size=record.size,
                actual_size=actual_size,
            )

        return True
