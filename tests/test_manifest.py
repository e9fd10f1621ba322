"""Tests for the checksum manifest."""

import hashlib
import json

import pytest

from patchsync.errors import (
    ChecksumMismatch,
    ConfigInvalid,
    FailureReason,
    ManifestDecodeFailed,
)
from patchsync.manifest import ChecksumManifest, ChecksumRecord

PAYLOAD = b"patch payload bytes"
PAYLOAD_MD5 = hashlib.md5(PAYLOAD).hexdigest()


def _manifest(**records) -> bytes:
    return json.dumps(records).encode()


class TestDecode:
    """Tests for decoding manifest documents."""

    def test_decode(self):
        manifest = ChecksumManifest.decode(
            _manifest(**{"patch.grf": {"hash": PAYLOAD_MD5, "size": len(PAYLOAD)}})
        )

        assert len(manifest) == 1
        assert manifest.lookup("patch.grf") == ChecksumRecord(
            filename="patch.grf", hash=PAYLOAD_MD5, size=len(PAYLOAD)
        )

    def test_keys_and_hashes_lowercased(self):
        manifest = ChecksumManifest.decode(
            _manifest(**{"Patch.GRF": {"hash": PAYLOAD_MD5.upper(), "size": 3}})
        )

        record = manifest.lookup("patch.grf")
        assert record.filename == "patch.grf"
        assert record.hash == PAYLOAD_MD5

    def test_empty_object(self):
        assert len(ChecksumManifest.decode(b"{}")) == 0

    @pytest.mark.parametrize(
        "data",
        [
            b"not json",
            b"",
            b"[1, 2, 3]",
            b'"string"',
            b'{"a.gpf": "abc"}',
            b'{"a.gpf": {"size": 3}}',
            b'{"a.gpf": {"hash": "abc"}}',
            b'{"a.gpf": {"hash": "abc", "size": "3"}}',
            b'{"a.gpf": {"hash": "abc", "size": -1}}',
            b'{"a.gpf": {"hash": "abc", "size": true}}',
            b"\xff\xfe\x00",
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(ManifestDecodeFailed) as exc_info:
            ChecksumManifest.decode(data)

        assert exc_info.value.reason == FailureReason.MANIFEST_DECODE_FAILED


class TestLookup:
    """Tests for case-insensitive lookups."""

    @pytest.fixture
    def manifest(self):
        return ChecksumManifest.decode(
            _manifest(**{"patch.grf": {"hash": PAYLOAD_MD5, "size": len(PAYLOAD)}})
        )

    def test_mixed_case_feed_name(self, manifest):
        assert manifest.lookup("Patch.GRF") is not None
        assert "PATCH.grf" in manifest

    def test_missing(self, manifest):
        assert manifest.lookup("other.grf") is None
        assert "other.grf" not in manifest


class TestVerify:
    """Tests for payload verification."""

    @pytest.fixture
    def manifest(self):
        return ChecksumManifest.decode(
            _manifest(**{"patch.grf": {"hash": PAYLOAD_MD5, "size": len(PAYLOAD)}})
        )

    def test_match(self, manifest):
        assert manifest.verify("Patch.GRF", PAYLOAD) is True

    def test_no_record_is_not_applicable(self, manifest):
        assert manifest.verify("unknown.grf", b"anything") is False

    def test_hash_mismatch(self, manifest):
        with pytest.raises(ChecksumMismatch) as exc_info:
            manifest.verify("patch.grf", b"X" * len(PAYLOAD))

        err = exc_info.value
        assert err.reason == FailureReason.CHECKSUM_MISMATCH
        assert err.expected_hash == PAYLOAD_MD5
        assert err.actual_size == len(PAYLOAD)
        assert "doesn't match checksum" in str(err)

    def test_size_mismatch_with_matching_hash(self):
        manifest = ChecksumManifest.decode(
            _manifest(**{"patch.grf": {"hash": PAYLOAD_MD5, "size": 100}})
        )

        with pytest.raises(ChecksumMismatch) as exc_info:
            manifest.verify("patch.grf", PAYLOAD)

        assert exc_info.value.expected_size == 100
        assert exc_info.value.actual_size == len(PAYLOAD)
        assert "size doesn't match" in str(exc_info.value)

    def test_other_algorithm(self):
        digest = hashlib.sha256(PAYLOAD).hexdigest()
        manifest = ChecksumManifest.decode(
            _manifest(**{"patch.grf": {"hash": digest, "size": len(PAYLOAD)}}),
            algorithm="sha256",
        )

        assert manifest.verify("patch.grf", PAYLOAD) is True

    @pytest.mark.parametrize("algorithm", ["md55", "shake_128", ""])
    def test_unsupported_algorithm(self, algorithm):
        with pytest.raises(ConfigInvalid) as exc_info:
            ChecksumManifest.decode(_manifest(), algorithm=algorithm)

        assert exc_info.value.reason == FailureReason.CONFIG_INVALID
