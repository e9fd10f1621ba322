"""Configuration loading for patchsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigInvalid
from .manifest import check_algorithm

DEFAULT_STATE_FILE = "patch.state"


@dataclass
class FetchConfig:
    timeout_seconds: float = 30.0
    max_attempts: int = 5
    user_agent: str = "patchsync"


@dataclass
class SourceConfig:
    """One remote patch server to mirror."""

    name: str
    output_dir: Path
    patch_list: str  # URI of the patch list feed
    patch_dir: str  # Base URI patch file names are appended to
    checksum_list: str | None = None  # Optional URI of the checksum manifest
    state_file: str = DEFAULT_STATE_FILE
    checksum_algorithm: str = "md5"

    @property
    def state_path(self) -> Path:
        return self.output_dir / self.state_file

    def patch_uri(self, filename: str) -> str:
        return f"{self.patch_dir}{filename}"


@dataclass
class Config:
    fetch: FetchConfig = field(default_factory=FetchConfig)
    sources: list[SourceConfig] = field(default_factory=list)

    def select(self, names: list[str] | None) -> list[SourceConfig]:
        """Return sources in configuration order, optionally filtered by name."""
        if not names:
            return list(self.sources)

        known = {s.name for s in self.sources}
        unknown = [n for n in names if n not in known]
        if unknown:
            raise ConfigInvalid(f"Unknown server(s): {', '.join(unknown)}")

        return [s for s in self.sources if s.name in names]


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with PATCHSYNC_ prefix."""
    return os.environ.get(f"PATCHSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if timeout := _get_env("FETCH_TIMEOUT"):
        config.fetch.timeout_seconds = float(timeout)
    if max_attempts := _get_env("MAX_ATTEMPTS"):
        config.fetch.max_attempts = int(max_attempts)
    if user_agent := _get_env("USER_AGENT"):
        config.fetch.user_agent = user_agent

    return config


def _parse_source(data: Any, index: int) -> SourceConfig:
    """Parse one entry of the ``servers`` list."""
    if not isinstance(data, dict):
        raise ConfigInvalid(f"servers[{index}] must be a mapping")

    missing = [k for k in ("server", "output_dir", "patch_list", "patch_dir") if not data.get(k)]
    if missing:
        name = data.get("server", f"servers[{index}]")
        raise ConfigInvalid(f"{name}: missing required key(s): {', '.join(missing)}")

    try:
        algorithm = check_algorithm(data.get("checksum_algorithm", "md5"))
    except ConfigInvalid as e:
        raise ConfigInvalid(f"{data['server']}: {e}") from e

    return SourceConfig(
        name=str(data["server"]),
        output_dir=Path(data["output_dir"]).expanduser(),
        patch_list=data["patch_list"],
        patch_dir=data["patch_dir"],
        checksum_list=data.get("checksum_list") or None,
        state_file=data.get("patch_track_file", DEFAULT_STATE_FILE),
        checksum_algorithm=algorithm,
    )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.

    Raises:
        ConfigInvalid: If the file can't be parsed or a server entry is
            incomplete or names an unknown checksum algorithm.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigInvalid(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"Failed to parse config file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigInvalid("Config file must contain a mapping")

        # Parse fetch config
        if "fetch" in data:
            fetch_data = data["fetch"] or {}
            config.fetch = FetchConfig(
                timeout_seconds=fetch_data.get(
                    "timeout_seconds", config.fetch.timeout_seconds
                ),
                max_attempts=fetch_data.get("max_attempts", config.fetch.max_attempts),
                user_agent=fetch_data.get("user_agent", config.fetch.user_agent),
            )

        # Parse servers
        servers = data.get("servers") or []
        if not isinstance(servers, list):
            raise ConfigInvalid("'servers' must be a list")
        config.sources = [_parse_source(s, i) for i, s in enumerate(servers)]

        names = [s.name for s in config.sources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigInvalid(f"Duplicate server name(s): {', '.join(duplicates)}")

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.fetch.max_attempts < 1:
        raise ConfigInvalid("fetch.max_attempts must be at least 1")

    return config
