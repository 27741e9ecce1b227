"""Terminal runtime for the session, built on prompt_toolkit.

Keys and ticks become session messages; the commands the session returns are
run as background tasks on the application's event loop. Blocking work
(opening the HTTP stream, waiting for the next event) goes to the default
executor so the loop never waits on the network.
"""

import asyncio
import logging
import signal

from prompt_toolkit.application import Application
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout
from prompt_toolkit.layout.containers import Window
from prompt_toolkit.layout.controls import FormattedTextControl

from llcommit.llm import CancelScope, CompletionRequest, CompletionStream, LLMClient, LLMError
from llcommit.log import null_logger
from llcommit.session.bridge import EventBridge
from llcommit.session.machine import Session
from llcommit.session.messages import (
    Command, Message, EndOfStream, KeyPress, SpinnerTick, TimerTick, StartStream, ReadNext, Quit, RUNES,
)

KEY_NAMES = {
    Keys.Enter: "enter",
    Keys.ControlR: "c-r",
    Keys.ControlC: "c-c",
    Keys.SIGINT: "c-c",
    Keys.Escape: "escape",
    Keys.Backspace: "backspace",
    Keys.Delete: "delete",
    Keys.Left: "left",
    Keys.Right: "right",
    Keys.Home: "home",
    Keys.End: "end",
    Keys.Up: "up",
    Keys.Down: "down",
    Keys.Tab: "tab",
    Keys.ControlA: "c-a",
    Keys.ControlE: "c-e",
    Keys.ControlK: "c-k",
    Keys.ControlU: "c-u",
    Keys.ControlN: "c-n",
    Keys.ControlP: "c-p",
}


class CommitApp:
    """Runs one session until it quits."""

    def __init__(self, session: Session, client: LLMClient, request: CompletionRequest,
                 scope: CancelScope, logger: logging.Logger | None = None):
        self.session = session
        self.client = client
        self.request = request
        self.scope = scope
        self.logger = logger or null_logger()

        self._stream: CompletionStream | None = None
        self._bridge: EventBridge | None = None
        self._app = self._build_app()

    def _build_app(self) -> Application:
        kb = KeyBindings()

        for key, name in KEY_NAMES.items():
            kb.add(key)(self._key_handler(name))

        @kb.add(Keys.BracketedPaste)
        def _paste(event):
            self.dispatch(KeyPress(RUNES, event.data))

        @kb.add(Keys.Any)
        def _any(event):
            if event.data.isprintable():
                self.dispatch(KeyPress(RUNES, event.data))

        control = FormattedTextControl(lambda: ANSI(self.session.view()), focusable=True, show_cursor=False)
        return Application(
            layout=Layout(Window(control, wrap_lines=True)),
            key_bindings=kb,
            full_screen=False,
        )

    def _key_handler(self, name: str):
        def handler(event):
            self.dispatch(KeyPress(name))
        return handler

    def dispatch(self, msg: Message) -> None:
        for command in self.session.update(msg):
            self._execute(command)
        self._app.invalidate()

    def _execute(self, command: Command) -> None:
        if isinstance(command, StartStream):
            self._app.create_background_task(self._start_stream())
        elif isinstance(command, ReadNext):
            self._app.create_background_task(self._read_next())
        elif isinstance(command, Quit):
            self._quit()
        else:
            raise TypeError(f"unexpected session command: {command!r}")

    async def _start_stream(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            stream = await loop.run_in_executor(None, self.client.open_stream, self.request, self.scope)
        except LLMError as e:
            self.logger.error("Failed to read from LLM", exc_info=True)
            for msg in EventBridge.failed(LLMError(f"failed to read from LLM: {e}")):
                self.dispatch(msg)
            return

        if self.session.quitting:
            stream.close(timeout=0)
            return

        self._stream = stream
        self._bridge = EventBridge(stream)
        await self._read_next()

    async def _read_next(self) -> None:
        bridge = self._bridge
        if bridge is None:
            return

        msg = await asyncio.get_running_loop().run_in_executor(None, bridge.next_event)
        self.logger.debug("Stream message: %r", msg)
        if isinstance(msg, EndOfStream) and bridge is self._bridge:
            self._stream = None
            self._bridge = None
        self.dispatch(msg)

    async def _tick(self, interval: float, message: Message) -> None:
        while True:
            await asyncio.sleep(interval)
            self.dispatch(message)

    def _quit(self) -> None:
        self.scope.cancel()
        if self._stream is not None:
            self._stream.close(timeout=0)
        if self._app.is_running and not self._app.is_done:
            self._app.exit()

    def _pre_run(self) -> None:
        self._app.create_background_task(self._tick(self.session.spinner.interval, SpinnerTick()))
        self._app.create_background_task(self._tick(self.session.countdown.interval, TimerTick()))
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, self.dispatch, KeyPress("c-c"))
        except (NotImplementedError, RuntimeError):
            pass  # no signal handlers on Windows event loops

        for command in self.session.init():
            self._execute(command)

    def run(self) -> str | None:
        """Run until the session quits. Returns the farewell message, if any."""
        try:
            self._app.run(pre_run=self._pre_run)
        finally:
            self.scope.cancel()
        return self.session.farewell
