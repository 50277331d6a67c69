"""Configuration dataclasses for netrepair.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  Configs are **frozen** so a value
read at the start of a session cannot drift while a repair cycle runs.

Files may be JSON or YAML; both map top-level section names (``repair``,
``logging``) to the fields below.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

BACKUP_DIR_ENV = "NETREPAIR_BACKUP_DIR"


def _default_backup_dir() -> str:
    return os.environ.get(
        BACKUP_DIR_ENV,
        str(Path.home() / ".network-repair-backups"),
    )


# ===================================================================== #
#  Repair Configuration                                                  #
# ===================================================================== #

@dataclass(frozen=True)
class RepairConfig:
    """Parameters for probes, repair actions and the backup store.

    Attributes
    ----------
    backup_dir:
        Directory receiving ``<filename>.<timestamp>`` snapshots.
    command_timeout:
        Seconds before an external command is abandoned.  A timeout is a
        category failure, not a fatal error.
    resolv_conf_path:
        Resolver file inspected by the DNS probe and rewritten by the DNS
        repair.
    fallback_nameservers:
        Nameservers written by the DNS repair when none work.
    connectivity_target:
        Address pinged by the connectivity probe.
    dns_test_domain:
        Name resolved by the DNS probe.
    ping_count:
        Echo requests per connectivity check.
    probe_workers:
        Thread-pool size for running probes concurrently.
    """

    backup_dir: str = field(default_factory=_default_backup_dir)
    command_timeout: float = 30.0
    resolv_conf_path: str = "/etc/resolv.conf"
    fallback_nameservers: tuple[str, ...] = ("1.1.1.1", "8.8.8.8")
    connectivity_target: str = "8.8.8.8"
    dns_test_domain: str = "google.com"
    ping_count: int = 3
    probe_workers: int = 4

    def __post_init__(self) -> None:
        # YAML/JSON give lists; keep the frozen value hashable.
        if isinstance(self.fallback_nameservers, list):
            object.__setattr__(
                self, "fallback_nameservers", tuple(self.fallback_nameservers)
            )

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if not self.backup_dir:
            raise ValueError("backup_dir must not be empty")
        if self.command_timeout <= 0:
            raise ValueError(
                f"command_timeout must be > 0, got {self.command_timeout}"
            )
        if not self.resolv_conf_path:
            raise ValueError("resolv_conf_path must not be empty")
        if not self.fallback_nameservers:
            raise ValueError("fallback_nameservers must not be empty")
        if self.ping_count < 1:
            raise ValueError(f"ping_count must be >= 1, got {self.ping_count}")
        if self.probe_workers < 1:
            raise ValueError(
                f"probe_workers must be >= 1, got {self.probe_workers}"
            )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["fallback_nameservers"] = list(self.fallback_nameservers)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepairConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Logging Configuration                                                 #
# ===================================================================== #

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class LoggingConfig:
    """Console and file logging settings.

    Attributes
    ----------
    level:
        Root level for the ``netrepair`` logger.
    log_file:
        Optional path; when set, records are also appended there.
    """

    level: str = "INFO"
    log_file: str = ""

    def validate(self) -> None:
        if self.level.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"level must be one of {sorted(_VALID_LOG_LEVELS)}, "
                f"got '{self.level}'"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Unified config loader                                                 #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "repair": RepairConfig,
    "logging": LoggingConfig,
}


def _build_sections(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("Top-level config must be a mapping")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    Unknown sections are preserved as raw values.
    """
    return _build_sections(json.loads(json_str))


def load_config_from_yaml(yaml_str: str) -> dict[str, Any]:
    """Parse a YAML string into a dict of typed config objects."""
    return _build_sections(yaml.safe_load(yaml_str))


def load_config(path: str | Path) -> dict[str, Any]:
    """Load a ``.json``, ``.yaml`` or ``.yml`` config file by extension."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        return load_config_from_yaml(text)
    if p.suffix.lower() == ".json":
        return load_config_from_json(text)
    raise ValueError(f"Unsupported config format: {p.suffix!r}")
