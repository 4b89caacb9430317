"""fanout: Run status commands on many SSH hosts in parallel."""

from .config import (
    DEFAULT_COMMANDS,
    ConnectionParams,
    Credential,
    Defaults,
    Inventory,
    KeyPath,
    NoCredential,
    Password,
    load_inventory,
    select_credential,
)
from .executor import Executor, HostResult, HostState, HostStatus, execute
from .session import (
    AsyncSSHSession,
    CommandError,
    ConnectError,
    RemoteSession,
    SessionError,
)

__all__ = [
    "DEFAULT_COMMANDS",
    "ConnectionParams",
    "Credential",
    "Defaults",
    "Inventory",
    "KeyPath",
    "NoCredential",
    "Password",
    "load_inventory",
    "select_credential",
    "Executor",
    "HostResult",
    "HostState",
    "HostStatus",
    "execute",
    "AsyncSSHSession",
    "CommandError",
    "ConnectError",
    "RemoteSession",
    "SessionError",
]
