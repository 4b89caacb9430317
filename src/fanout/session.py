"""SSH transport used by the executor to reach each host."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import asyncssh

from .config import Credential, KeyPath, Password

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base class for transport failures."""


class ConnectError(SessionError):
    """The host could not be reached or authenticated."""


class CommandError(SessionError):
    """A single command could not be started or did not complete cleanly."""

    def __init__(
        self, command: str, reason: str, exit_status: int | None = None
    ) -> None:
        super().__init__(reason)
        self.command = command
        self.reason = reason
        self.exit_status = exit_status


class RemoteSession(Protocol):
    """Capability the executor needs from a remote shell transport."""

    async def connect(
        self,
        address: str,
        port: int,
        username: str,
        credential: Credential,
        timeout: float,
    ) -> Any: ...

    async def run(self, conn: Any, command: str) -> str: ...

    async def close(self, conn: Any) -> None: ...


class AsyncSSHSession:
    """RemoteSession backed by asyncssh.

    Host key verification is disabled (``known_hosts=None``). This is an
    insecure default: any host key presented by the target is accepted.
    """

    async def connect(
        self,
        address: str,
        port: int,
        username: str,
        credential: Credential,
        timeout: float,
    ) -> asyncssh.SSHClientConnection:
        options = self._auth_options(credential)

        logger.debug("Connecting to %s@%s:%d", username, address, port)
        try:
            return await asyncssh.connect(
                address,
                port=port,
                username=username,
                known_hosts=None,  # Skip host key verification
                connect_timeout=timeout,
                **options,
            )
        except asyncssh.PermissionDenied as e:
            raise ConnectError(f"auth {address}: {e}") from e
        except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
            raise ConnectError(f"dial {address}: {str(e) or type(e).__name__}") from e

    def _auth_options(self, credential: Credential) -> dict[str, Any]:
        """Translate a credential into asyncssh connect options."""
        if isinstance(credential, KeyPath):
            try:
                key = asyncssh.read_private_key(str(credential.path))
            except OSError as e:
                raise ConnectError(f"read key: {e}") from e
            except asyncssh.KeyImportError as e:
                raise ConnectError(f"parse key: {e}") from e
            return {"client_keys": [key], "agent_path": None}

        if isinstance(credential, Password):
            return {
                "password": credential.secret,
                "client_keys": None,
                "agent_path": None,
            }

        raise ConnectError("no auth method")

    async def run(self, conn: asyncssh.SSHClientConnection, command: str) -> str:
        """Run ``command`` in its own channel and return its standard output.

        Output is read as bytes and decoded leniently; undecodable bytes
        become U+FFFD instead of tearing down the connection.
        """
        try:
            result = await conn.run(command, check=False, encoding=None)
        except (asyncssh.Error, OSError) as e:
            raise CommandError(command, str(e)) from e

        if result.exit_status != 0:
            if result.exit_signal:
                reason = f"killed by signal {result.exit_signal[0]}"
            elif result.exit_status is None:
                reason = "closed without exit status"
            else:
                reason = f"exited with status {result.exit_status}"
            stderr = _decode(result.stderr).strip()
            if stderr:
                reason = f"{reason}: {stderr}"
            raise CommandError(command, reason, exit_status=result.exit_status)

        return _decode(result.stdout)

    async def close(self, conn: asyncssh.SSHClientConnection) -> None:
        conn.close()
        await conn.wait_closed()


def _decode(data: bytes | str | None) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
