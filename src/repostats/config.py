"""Settings for a statistics run, optionally loaded from a YAML file."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .cache import DIGEST_BYTES
from .classify import DEFAULT_SITE_PATTERN
from .daycache import RETENTION_DAYS
from .leaf import BURST_GAP
from .logreader import DEFAULT_CHUNK_SIZE

DEFAULT_CONFIG_FILE = "repostats.yml"
DEFAULT_CACHE_DIR = Path("~/.cache/repostats")

# Entries older than this are not even parsed
DEFAULT_LOOKBACK_DAYS = 60


@dataclass(frozen=True)
class Settings:
    """Tunable parameters of the statistics pipeline."""

    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR.expanduser())
    burst_gap: float = BURST_GAP
    retention_days: int = RETENTION_DAYS
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    digest_bytes: int = DIGEST_BYTES
    per_ip: bool = False
    strict: bool = False
    site_pattern: str = DEFAULT_SITE_PATTERN

    def __post_init__(self) -> None:
        if self.burst_gap <= 0:
            raise ValueError("burst_gap must be > 0")
        if self.retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        if self.lookback_days < self.retention_days:
            raise ValueError("lookback_days must be >= retention_days")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.digest_bytes < 1:
            raise ValueError("digest_bytes must be >= 1")
        try:
            pattern = re.compile(self.site_pattern)
        except re.error as e:
            raise ValueError(f"site_pattern is not a valid regex: {e}") from e
        if "path" not in pattern.groupindex:
            raise ValueError("site_pattern must define a 'path' group")


def _to_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected true or false, got {value!r}")
    return value


_CONVERTERS: dict[str, Any] = {
    "cache_dir": lambda v: Path(str(v)).expanduser(),
    "burst_gap": float,
    "retention_days": int,
    "lookback_days": int,
    "chunk_size": int,
    "digest_bytes": int,
    "per_ip": _to_bool,
    "strict": _to_bool,
    "site_pattern": str,
}


def settings_from_dict(data: dict[str, Any], base: Settings | None = None) -> Settings:
    """Override ``base`` (or the defaults) with the values of ``data``.

    Raises:
        ValueError: On unknown keys or invalid values.
    """
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(unknown)}")
    try:
        values = {key: _CONVERTERS[key](value) for key, value in data.items()}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid setting value: {e}") from e
    return replace(base or Settings(), **values)


def load_settings(config_file: str | Path | None = None) -> Settings:
    """Load settings from a YAML file.

    Without an explicit file, ``repostats.yml`` in the working directory is
    used when present; otherwise the defaults apply.
    """
    if config_file is None:
        default = Path(DEFAULT_CONFIG_FILE)
        if not default.is_file():
            return Settings()
        config_file = default

    with open(config_file) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_file}: expected a mapping of settings")
    return settings_from_dict(data)
