"""Textual shell around the interactive model."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from textual.app import App, ComposeResult
from textual.events import Key, Resize
from textual.widgets import Static

from repjan.services.datetime_service import now_utc
from repjan.tui.events import KeyPressed, Quit, Resized
from repjan.tui.view import render_main, render_modal

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from repjan.services.refresh_service import RefreshWorker
    from repjan.tui.events import Command, Event
    from repjan.tui.model import Model
    from repjan.tui.runner import CommandRunner

logger = logging.getLogger(__name__)

REDRAW_INTERVAL_SECONDS = 30.0


def normalize_key(key: str, character: str | None) -> str:
    """Map a Textual key event onto the model's key vocabulary.

    Printable characters are passed through as-is (so shift+g arrives as
    ``"G"``); space becomes ``" "``; everything else keeps its key name.
    """
    if key == "space":
        return " "
    if character is not None and len(character) == 1 and character.isprintable():
        return character
    return key


class RepjanApp(App[None]):
    """Feeds keys, resizes and refresh messages into the model and runs its commands."""

    TITLE = "repjan"
    ENABLE_COMMAND_PALETTE = False
    CSS = """
    Screen {
        align: center middle;
    }

    #main {
        width: 100%;
        height: 100%;
    }

    #modal {
        display: none;
        width: auto;
        max-width: 90%;
        height: auto;
        max-height: 90%;
        border: round $accent;
        padding: 1 2;
    }
    """

    def __init__(
        self,
        model: Model,
        runner: CommandRunner,
        worker: RefreshWorker | None = None,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        super().__init__()
        self.model = model
        self.runner = runner
        self._refresh_worker = worker
        self._wall_clock = clock

    def compose(self) -> ComposeResult:
        yield Static(id="main")
        yield Static(id="modal")

    def on_mount(self) -> None:
        self.model.update(Resized(self.size.width, self.size.height))
        self._redraw()
        if self._refresh_worker is not None:
            self.run_worker(self._pump_refresh(), group="refresh", exit_on_error=False)
        self.set_interval(REDRAW_INTERVAL_SECONDS, self._redraw)

    def on_key(self, event: Key) -> None:
        event.stop()
        event.prevent_default()
        self.apply_event(KeyPressed(normalize_key(event.key, event.character)))

    def on_resize(self, event: Resize) -> None:
        self.apply_event(Resized(event.size.width, event.size.height))

    def apply_event(self, event: Event) -> None:
        """Apply one event, redraw, and schedule the resulting commands."""
        commands = self.model.update(event)
        self._redraw()
        for command in commands:
            self._schedule(command)

    def _schedule(self, command: Command) -> None:
        if isinstance(command, Quit):
            self.exit()
            return
        self.run_worker(self._execute(command), group="commands", exit_on_error=False)

    async def _execute(self, command: Command) -> None:
        result = await self.runner.run(command)
        if result is not None:
            self.apply_event(result)

    async def _pump_refresh(self) -> None:
        """Forward refresh worker messages in order until the end-of-stream marker."""
        assert self._refresh_worker is not None
        while True:
            message = await self._refresh_worker.messages.get()
            if message is None:
                logger.debug("Refresh stream closed")
                return
            self.apply_event(message)

    def _redraw(self) -> None:
        main = self.query_one("#main", Static)
        modal = self.query_one("#modal", Static)
        content = render_modal(self.model)
        if content is None:
            main.update(render_main(self.model, self._wall_clock()))
            main.display = True
            modal.display = False
        else:
            modal.update(content)
            modal.display = True
            main.display = False
