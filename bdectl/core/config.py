"""Configuration loading with layered overrides."""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

ESCROW_TARGETS = ("ad", "aad", "none")

# 0x8031004A, the HRESULT for a pending TPM hardware test, reads the same in
# every locale. The English notice manage-bde prints (exit 0) only matches
# on English systems; add the localized text via restart_signatures.
DEFAULT_RESTART_SIGNATURES = (
    "0x8031004A",
    "restart the computer to run a hardware test",
)


@dataclass(frozen=True)
class Settings:
    """Effective settings for an enablement run."""

    mount_point: str | None = None
    escrow_target: str = "ad"
    decrypt_timeout: float = 6 * 60 * 60
    poll_interval: float = 30
    poll_max_interval: float = 300
    command_timeout: int = 300
    used_space_only: bool = False
    encryption_method: str | None = None
    restart_signatures: tuple[str, ...] = field(default=DEFAULT_RESTART_SIGNATURES)
    log_dir: str | None = None

    def with_overrides(self, **overrides: Any) -> "Settings":
        """
        Return a copy with non-None overrides applied.

        Raises:
            ValueError: If an override fails the same checks as config values
        """
        values = {}
        for key, value in overrides.items():
            if value is not None:
                values[key] = _checked(key, value)
        return replace(self, **values)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML config file if it exists."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def config_paths(explicit: Path | None = None) -> list[Path]:
    """Config files in precedence order, highest first."""
    paths = []
    if explicit is not None:
        paths.append(explicit)
    paths.append(Path(".bdectl.yaml"))
    paths.append(Path.home() / ".config" / "bdectl" / "config.yaml")
    return paths


NUMERIC_FIELDS = ("decrypt_timeout", "poll_interval", "poll_max_interval", "command_timeout")


def _coerce(name: str, value: Any) -> Any:
    """Normalize a raw YAML value for a Settings field."""
    if name == "restart_signatures":
        if isinstance(value, str):
            return (value,)
        if not isinstance(value, (list, tuple)) or not value:
            raise ValueError("expected a string or a non-empty list of strings")
        return tuple(str(v) for v in value)
    if name == "escrow_target":
        # An empty value (YAML null) is an error, not "none"
        if not isinstance(value, str) or value.lower() not in ESCROW_TARGETS:
            raise ValueError(f"must be one of {', '.join(ESCROW_TARGETS)}, got {value!r}")
        return value.lower()
    if name in NUMERIC_FIELDS:
        if isinstance(value, bool) or value is None:
            raise ValueError(f"expected a number, got {value!r}")
        number = int(value) if name == "command_timeout" else float(value)
        if number < 0:
            raise ValueError(f"must be >= 0, got {value!r}")
        return number
    if name == "used_space_only":
        if not isinstance(value, bool):
            raise ValueError(f"expected true or false, got {value!r}")
        return value
    return None if value is None else str(value)


def _checked(name: str, value: Any) -> Any:
    try:
        return _coerce(name, value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid config value for {name}: {e}") from e


def load_settings(explicit: Path | None = None) -> Settings:
    """
    Build Settings from config files.

    Args:
        explicit: Config file given on the command line (highest precedence)

    Returns:
        Settings with each key taken from the first file defining it

    Raises:
        ValueError: If a config value has the wrong type or an invalid choice
    """
    known = {f.name for f in fields(Settings)}
    merged: dict[str, Any] = {}

    # Lowest precedence first so higher layers overwrite
    for path in reversed(config_paths(explicit)):
        for key, value in load_config_file(path).items():
            if key in known:
                merged[key] = value

    values = {key: _checked(key, value) for key, value in merged.items()}
    return Settings(**values)
