"""Shared fixtures: an in-memory remote session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from fanout.config import ConnectionParams, Credential, Password
from fanout.session import CommandError, ConnectError


@dataclass
class FakeConnection:
    host: str
    closed: bool = False
    active: int = 0


@dataclass
class FakeSession:
    """RemoteSession that answers from dictionaries instead of the network."""

    unreachable: set[str] = field(default_factory=set)
    failing: dict[str, set[str]] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    connects: list[str] = field(default_factory=list)
    runs: list[tuple[str, str]] = field(default_factory=list)
    connections: list[FakeConnection] = field(default_factory=list)
    overlapped: bool = False

    async def connect(
        self,
        address: str,
        port: int,
        username: str,
        credential: Credential,
        timeout: float,
    ) -> Any:
        self.connects.append(address)
        await asyncio.sleep(self.delays.get(address, 0))
        if address in self.unreachable:
            raise ConnectError(f"dial {address}: connection refused")
        conn = FakeConnection(address)
        self.connections.append(conn)
        return conn

    async def run(self, conn: FakeConnection, command: str) -> str:
        assert not conn.closed
        conn.active += 1
        if conn.active > 1:
            self.overlapped = True
        try:
            self.runs.append((conn.host, command))
            await asyncio.sleep(0)
            if command in self.failing.get(conn.host, set()):
                raise CommandError(command, "exited with status 1", exit_status=1)
            return f"{command} on {conn.host}\n"
        finally:
            conn.active -= 1

    async def close(self, conn: FakeConnection) -> None:
        conn.closed = True


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_params():
    def _make(*hosts: str) -> ConnectionParams:
        return ConnectionParams(
            hosts=hosts, username="ops", credential=Password("secret"), timeout=1
        )

    return _make
