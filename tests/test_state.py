"""Tests for the resume state store."""

import os
from unittest.mock import patch

import pytest

from patchsync.errors import FailureReason, WriteFailed
from patchsync.state import atomic_write_bytes, load_state, parse_state, save_state


class TestParseState:
    """Tests for permissive state parsing."""

    @pytest.mark.parametrize(
        "content,expected",
        [
            ("42", 42),
            ("42\n", 42),
            ("  17  ", 17),
            ("+8", 8),
            ("12abc", 12),
            ("", 0),
            ("abc", 0),
            ("-5", 0),
            ("0", 0),
        ],
    )
    def test_parse(self, content, expected):
        assert parse_state(content) == expected


class TestLoadState:
    """Tests for loading the state file."""

    def test_missing_file(self, tmp_path):
        assert load_state(tmp_path / "patch.state") == 0

    def test_existing_file(self, tmp_path):
        path = tmp_path / "patch.state"
        path.write_text("1234")

        assert load_state(path) == 1234

    def test_malformed_is_zero(self, tmp_path, caplog):
        path = tmp_path / "patch.state"
        path.write_text("garbage")

        assert load_state(path) == 0
        assert "unexpected content" in caplog.text


class TestSaveState:
    """Tests for persisting the state file."""

    def test_roundtrip(self, tmp_path):
        path = tmp_path / "patch.state"

        save_state(path, 99)

        assert path.read_text() == "99"
        assert load_state(path) == 99

    def test_overwrites_whole_content(self, tmp_path):
        path = tmp_path / "patch.state"
        path.write_text("123456789")

        save_state(path, 7)

        assert path.read_text() == "7"

    def test_no_temp_file_left(self, tmp_path):
        path = tmp_path / "patch.state"

        save_state(path, 5)

        assert sorted(p.name for p in tmp_path.iterdir()) == ["patch.state"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(WriteFailed) as exc_info:
            save_state(tmp_path / "missing" / "patch.state", 5)

        assert exc_info.value.reason == FailureReason.WRITE_FAILED
        assert "patch state" in str(exc_info.value)

    def test_failed_rename_keeps_old_value(self, tmp_path):
        path = tmp_path / "patch.state"
        path.write_text("3")

        with patch("patchsync.state.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(WriteFailed):
                save_state(path, 4)

        assert load_state(path) == 3
        assert sorted(p.name for p in tmp_path.iterdir()) == ["patch.state"]


class TestAtomicWrite:
    """Tests for the atomic write helper."""

    def test_replaces_existing(self, tmp_path):
        path = tmp_path / "file.gpf"
        path.write_bytes(b"old content that is longer")

        atomic_write_bytes(path, b"new")

        assert path.read_bytes() == b"new"

    def test_fsyncs_before_rename(self, tmp_path):
        calls = []
        real_fsync = os.fsync
        real_replace = os.replace

        def fake_fsync(fd):
            calls.append("fsync")
            real_fsync(fd)

        def fake_replace(src, dst):
            calls.append("replace")
            real_replace(src, dst)

        with patch("patchsync.state.os.fsync", side_effect=fake_fsync), patch(
            "patchsync.state.os.replace", side_effect=fake_replace
        ):
            atomic_write_bytes(tmp_path / "file.gpf", b"data")

        assert calls == ["fsync", "replace"]

    def test_embedded_nul_is_write_failure(self, tmp_path):
        with pytest.raises(WriteFailed) as exc_info:
            atomic_write_bytes(tmp_path / "a\x00b.gpf", b"data")

        assert exc_info.value.reason == FailureReason.WRITE_FAILED
        assert list(tmp_path.iterdir()) == []
