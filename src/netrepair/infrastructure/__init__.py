"""Infrastructure layer for netrepair.

Re-exports the public API surface for convenience::

    from netrepair.infrastructure import (
        BackupStore, CommandRunner, EventBus, EventStore, RepairConfig,
    )
"""

from netrepair.infrastructure.backup import BackupStore
from netrepair.infrastructure.commands import CommandResult, CommandRunner
from netrepair.infrastructure.config import (
    LoggingConfig,
    RepairConfig,
    load_config,
    load_config_from_json,
    load_config_from_yaml,
)
from netrepair.infrastructure.event_bus import EventBus, EventStore
from netrepair.infrastructure.logging_config import configure_logging
from netrepair.infrastructure.privileges import PrivilegeChecker, can_sudo, is_root

__all__ = [
    # Backups
    "BackupStore",
    # Commands
    "CommandResult",
    "CommandRunner",
    # Configuration
    "LoggingConfig",
    "RepairConfig",
    "load_config",
    "load_config_from_json",
    "load_config_from_yaml",
    # Event bus
    "EventBus",
    "EventStore",
    # Logging
    "configure_logging",
    # Privileges
    "PrivilegeChecker",
    "can_sudo",
    "is_root",
]
