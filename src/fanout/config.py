"""Connection parameters and inventory loader for fanout."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import yaml

DEFAULT_PORT = 22
DEFAULT_TIMEOUT = 5.0

DEFAULT_COMMANDS: tuple[str, ...] = (
    "uname -a",
    "df -h",
    "uptime",
    "free -h",
    "nproc",
)


@dataclass(frozen=True)
class KeyPath:
    """Authenticate with the private key stored at ``path``."""

    path: Path


@dataclass(frozen=True)
class Password:
    """Authenticate with a password."""

    secret: str = field(repr=False)


@dataclass(frozen=True)
class NoCredential:
    """No usable credential was configured; every host fails to authenticate."""


Credential = Union[KeyPath, Password, NoCredential]


def select_credential(
    key_path: str | Path | None, password: str | None
) -> Credential:
    """Pick the credential to use. A key takes precedence over a password."""
    if key_path:
        return KeyPath(Path(key_path).expanduser())
    if password:
        return Password(password)
    return NoCredential()


@dataclass(frozen=True)
class ConnectionParams:
    """Shared, read-only parameters for one run across all hosts."""

    hosts: tuple[str, ...]
    username: str
    credential: Credential = field(default_factory=NoCredential)
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        # Callers may pass any sequence; freeze it for the lifetime of the run
        object.__setattr__(self, "hosts", tuple(self.hosts))


@dataclass
class Defaults:
    """Default values that the command line can override."""

    user: str | None = None
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    ssh_key: Path | None = None


@dataclass
class Inventory:
    """Hosts and commands loaded from an inventory file."""

    hosts: list[str]
    commands: list[str] = field(default_factory=lambda: list(DEFAULT_COMMANDS))
    defaults: Defaults = field(default_factory=Defaults)
    log_dir: Path | None = None
    source_path: Path | None = None  # Path to the original inventory file


def load_inventory(inventory_path: str | Path) -> Inventory:
    """Load and validate an inventory from a YAML (or JSON) file."""
    inventory_path = Path(inventory_path).expanduser().resolve()

    if not inventory_path.exists():
        raise FileNotFoundError(f"Inventory file not found: {inventory_path}")

    with open(inventory_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Cannot parse inventory: {e}") from e

    inventory = _parse_inventory(raw)
    inventory.source_path = inventory_path
    return inventory


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    if not isinstance(defaults_raw, dict):
        raise ValueError("'defaults' must be a mapping")

    ssh_key = defaults_raw.get("ssh_key")
    return Defaults(
        user=defaults_raw.get("user"),
        port=int(defaults_raw.get("port", DEFAULT_PORT)),
        timeout=float(defaults_raw.get("timeout", DEFAULT_TIMEOUT)),
        ssh_key=Path(ssh_key).expanduser() if ssh_key else None,
    )


def _parse_inventory(raw: Any) -> Inventory:
    """Parse raw YAML data into an Inventory object."""
    if not isinstance(raw, dict):
        raise ValueError("Inventory must be a mapping with a 'hosts' list")

    if "hosts" not in raw:
        raise ValueError("No 'hosts' defined in inventory")

    hosts_raw = raw["hosts"] or []
    if not isinstance(hosts_raw, list):
        raise ValueError("'hosts' must be a list")
    for host in hosts_raw:
        if not isinstance(host, str) or not host:
            raise ValueError(f"Invalid host entry: {host!r}")

    command_groups: dict[str, list[str]] = raw.get("command_groups") or {}

    commands = list(DEFAULT_COMMANDS)
    if "commands" in raw:
        commands = _resolve_commands(raw["commands"] or [], command_groups)
        if not commands:
            raise ValueError("'commands' must contain at least one command")

    log_dir = raw.get("log_dir")

    return Inventory(
        hosts=list(hosts_raw),
        commands=commands,
        defaults=_parse_defaults(raw),
        log_dir=Path(log_dir).expanduser().resolve() if log_dir else None,
    )


def _resolve_commands(
    commands_raw: list[str], command_groups: dict[str, list[str]]
) -> list[str]:
    """Resolve command references to actual commands."""
    commands = []

    for cmd in commands_raw:
        if cmd in command_groups:
            # It's a group reference, expand it
            commands.extend(command_groups[cmd])
        else:
            commands.append(cmd)

    return commands
