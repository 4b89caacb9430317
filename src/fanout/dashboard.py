"""TUI Dashboard for fanout."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from rich.text import Text
from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker, WorkerState

from .config import ConnectionParams
from .executor import Executor, HostResult, HostStatus
from .session import RemoteSession

STATUS_ICONS = {
    HostStatus.PENDING: ("·", "dim"),
    HostStatus.CONNECTING: ("…", "yellow"),
    HostStatus.RUNNING: ("▶", "yellow"),
    HostStatus.SUCCESS: ("✔", "green"),
    HostStatus.FAILED: ("✘", "red"),
}


class HostPanel(Static):
    """A panel displaying the result of a single host."""

    status: reactive[HostStatus] = reactive(HostStatus.PENDING)

    def __init__(self, index: int, host: str, port: int, user: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.host_index = index
        self.host = host
        self.port = port
        self.user = user

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.host_index}")
        yield RichLog(id=f"log-{self.host_index}", markup=False, wrap=True, auto_scroll=True)

    def _get_header(self) -> Text:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        header = Text()
        header.append(f"{icon} ", style=color)
        header.append(self.host, style=f"bold {color}")
        header.append(f" {self.user}@{self.host}:{self.port}", style=color)
        return header

    def watch_status(self, status: HostStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.host_index}", Label)
        header.update(self._get_header())

    def show_result(self, result: HostResult) -> None:
        """Write a finished host result into this panel."""
        log = self.query_one(f"#log-{self.host_index}", RichLog)
        if result.error is not None:
            log.write(Text(f"ERROR: {result.error}", style="bold red"))
            return
        for line in result.output.splitlines():
            if line.startswith("Command '") and line.endswith("' output:"):
                log.write(Text(line, style="bold cyan"))
            elif line.startswith("Command '") and "' failed: " in line:
                log.write(Text(line, style="red"))
            else:
                log.write(Text(line))


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return f"Progress: {self.completed}/{self.total} hosts complete | {status} | Press 'q' to quit"


class HostResultReady(Message):
    """Message for a finished host."""

    def __init__(self, result: HostResult) -> None:
        super().__init__()
        self.result = result


class HostStatusChange(Message):
    """Message for host status change."""

    def __init__(self, index: int, status: HostStatus) -> None:
        super().__init__()
        self.host_index = index
        self.status = status


class Dashboard(App):
    """Main TUI Dashboard application."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        params: ConnectionParams,
        commands: Sequence[str],
        session: RemoteSession | None = None,
        log_dir: Path | None = None,
        inventory_path: Path | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.params = params
        self.commands = tuple(commands)
        self.panels: dict[int, HostPanel] = {}
        self.results: list[HostResult] = []
        self.executor = Executor(
            params,
            self.commands,
            session=session,
            on_status=self._on_status,
            on_result=self._on_result,
            log_dir=log_dir,
            inventory_path=inventory_path,
        )
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        # One panel per host entry, duplicates included
        for index, host in enumerate(self.params.hosts):
            panel = HostPanel(
                index,
                host,
                self.params.port,
                self.params.username,
                id=f"panel-{index}",
            )
            self.panels[index] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.params.hosts)

        self._worker = self.run_worker(self._run_execution(), exclusive=True)

    async def _run_execution(self) -> None:
        self.results = await self.executor.run_all()

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == WorkerState.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_status(self, index: int, hostname: str, status: HostStatus) -> None:
        self.post_message(HostStatusChange(index, status))

    def _on_result(self, result: HostResult) -> None:
        self.post_message(HostResultReady(result))

    def on_host_status_change(self, message: HostStatusChange) -> None:
        if message.host_index in self.panels:
            self.panels[message.host_index].status = message.status

    def on_host_result_ready(self, message: HostResultReady) -> None:
        if message.result.index in self.panels:
            self.panels[message.result.index].show_result(message.result)

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.completed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
