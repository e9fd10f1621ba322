"""Shared fixtures for patchsync tests."""

from pathlib import Path

import pytest

from patchsync.config import SourceConfig

from fakes import CHECKSUM_LIST, PATCH_DIR, PATCH_LIST


@pytest.fixture
def output_dir(tmp_path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def source(output_dir) -> SourceConfig:
    return SourceConfig(
        name="kRO",
        output_dir=output_dir,
        patch_list=PATCH_LIST,
        patch_dir=PATCH_DIR,
    )


@pytest.fixture
def checked_source(output_dir) -> SourceConfig:
    return SourceConfig(
        name="kRO",
        output_dir=output_dir,
        patch_list=PATCH_LIST,
        patch_dir=PATCH_DIR,
        checksum_list=CHECKSUM_LIST,
    )
