"""Concurrent execution engine for fanout."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from .config import ConnectionParams
from .session import AsyncSSHSession, CommandError, ConnectError, RemoteSession

logger = logging.getLogger(__name__)


class HostStatus(Enum):
    """Status of a host's execution."""

    PENDING = "pending"
    CONNECTING = "connecting"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class HostResult:
    """Finished outcome of running the command list against one host."""

    index: int
    hostname: str
    output: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class HostState:
    """Runtime state for a host while its task is running."""

    index: int
    hostname: str
    status: HostStatus = HostStatus.PENDING
    output_parts: list[str] = field(default_factory=list)
    error: str | None = None
    failed_commands: int = 0
    delivered: bool = False
    log_file: Path | None = None

    def record_output(self, command: str, output: str) -> None:
        self.output_parts.append(f"Command '{command}' output:\n{output}\n")

    def record_failure(self, command: str, reason: str) -> None:
        self.failed_commands += 1
        self.output_parts.append(f"Command '{command}' failed: {reason}\n")

    def finish(self) -> HostResult:
        return HostResult(
            index=self.index,
            hostname=self.hostname,
            output="".join(self.output_parts),
            error=self.error,
        )


# (index, hostname, status) -> None
StatusCallback = Callable[[int, str, HostStatus], None]
ResultCallback = Callable[[HostResult], None]


class Executor:
    """Runs a fixed command list on every host in parallel."""

    def __init__(
        self,
        params: ConnectionParams,
        commands: Sequence[str],
        session: RemoteSession | None = None,
        on_status: StatusCallback | None = None,
        on_result: ResultCallback | None = None,
        log_dir: Path | None = None,
        inventory_path: Path | None = None,
    ):
        self.params = params
        self.commands = tuple(commands)
        self.session = session or AsyncSSHSession()
        self.on_status = on_status
        self.on_result = on_result
        self.log_dir = log_dir
        self.inventory_path = inventory_path
        self.states: list[HostState] = []
        self._run_dir: Path | None = None

    def _setup_logging(self) -> None:
        """Set up the per-run log directory with timestamp."""
        if self.log_dir is None or not self.params.hosts:
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = self.log_dir / timestamp
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create log directory %s: %s", run_dir, e)
            return
        self._run_dir = run_dir

        # Copy the inventory file next to the results it produced
        if self.inventory_path and self.inventory_path.exists():
            try:
                shutil.copy(self.inventory_path, run_dir / "inventory.yaml")
            except OSError as e:
                logger.warning("Cannot copy inventory to %s: %s", run_dir, e)

    def _emit_status(self, state: HostState, status: HostStatus) -> None:
        state.status = status
        if self.on_status:
            try:
                self.on_status(state.index, state.hostname, status)
            except Exception:
                logger.exception("Status callback failed for %s", state.hostname)

    def _write_log(self, result: HostResult) -> None:
        state = self.states[result.index]
        if state.log_file is None:
            return
        try:
            with open(state.log_file, "w") as f:
                if result.error is not None:
                    f.write(f"ERROR: {result.error}\n")
                else:
                    f.write(result.output)
        except OSError as e:
            logger.warning("Cannot write %s: %s", state.log_file, e)

    async def run_all(self) -> list[HostResult]:
        """Run the commands on all hosts in parallel.

        Returns one HostResult per input host, in completion order. Never
        raises for host or command failures.
        """
        self._setup_logging()

        self.states = []
        for index, host in enumerate(self.params.hosts):
            log_file = None
            if self._run_dir:
                log_file = self._run_dir / f"{index}-{_safe_name(host)}.log"
            self.states.append(HostState(index=index, hostname=host, log_file=log_file))

        if not self.states:
            return []

        queue: asyncio.Queue[HostResult] = asyncio.Queue()
        tasks = [self._run_host(state, queue) for state in self.states]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        # A task that blew up never reported; record it as a host failure
        for state, outcome in zip(self.states, outcomes):
            if isinstance(outcome, BaseException) and not state.delivered:
                logger.error(
                    "Unexpected failure on %s", state.hostname, exc_info=outcome
                )
                state.error = f"internal error: {outcome!r}"
                state.output_parts.clear()
                self._deliver(state, queue)

        results = []
        while not queue.empty():
            results.append(queue.get_nowait())

        reported = sorted(result.index for result in results)
        if reported != list(range(len(self.states))):
            logger.error("Expected one result per host, got indexes %s", reported)

        return results

    def _deliver(self, state: HostState, queue: asyncio.Queue[HostResult]) -> None:
        """Hand a finished host over to the aggregator, exactly once."""
        if state.delivered:
            return
        state.delivered = True

        result = state.finish()
        queue.put_nowait(result)

        failed = state.error is not None or state.failed_commands > 0
        self._emit_status(state, HostStatus.FAILED if failed else HostStatus.SUCCESS)
        self._write_log(result)
        if self.on_result:
            try:
                self.on_result(result)
            except Exception:
                logger.exception("Result callback failed for %s", state.hostname)

    async def _run_host(
        self, state: HostState, queue: asyncio.Queue[HostResult]
    ) -> None:
        """Run all commands on a single host."""
        params = self.params

        self._emit_status(state, HostStatus.CONNECTING)
        try:
            conn = await self.session.connect(
                state.hostname,
                params.port,
                params.username,
                params.credential,
                params.timeout,
            )
        except ConnectError as e:
            logger.warning("%s: %s", state.hostname, e)
            state.error = str(e)
            self._deliver(state, queue)
            return

        self._emit_status(state, HostStatus.RUNNING)
        try:
            for cmd in self.commands:
                logger.debug("%s: $ %s", state.hostname, cmd)
                try:
                    output = await self.session.run(conn, cmd)
                except CommandError as e:
                    logger.warning("%s: command %r failed: %s", state.hostname, cmd, e)
                    state.record_failure(cmd, e.reason)
                    continue
                state.record_output(cmd, output)
        finally:
            await self.session.close(conn)

        self._deliver(state, queue)


def _safe_name(host: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", host)


def execute(
    params: ConnectionParams,
    commands: Sequence[str],
    session: RemoteSession | None = None,
) -> list[HostResult]:
    """Blocking wrapper around Executor.run_all()."""
    return asyncio.run(Executor(params, commands, session=session).run_all())
