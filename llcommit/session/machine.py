"""Interactive session state machine.

The session owns every piece of on-screen state. The runtime feeds it one
message at a time through ``update`` and carries out the commands it returns;
``view`` renders the current state as text. Nothing here blocks or touches
the network, so the whole machine can be driven directly in tests.
"""

import logging
from enum import Enum
from typing import Callable

from llcommit.git import GitError
from llcommit.llm import StreamCancelled
from llcommit.log import null_logger
from llcommit.output import error_style, text_style
from llcommit.session.messages import (
    Command, Message, ContentDelta, StreamError, EndOfStream, KeyPress, SpinnerTick, TimerTick,
    StartStream, ReadNext, Quit,
)
from llcommit.session.widgets import Countdown, KeyBinding, Spinner, TextInput, new_keymap, short_help

FAREWELL = "Successfully committed ;)"
PLACEHOLDER = "Write your commit message..."


class CommitError(Exception):
    """Raised when a suggestion can't be committed."""
    pass


class Phase(Enum):
    STREAMING = "streaming"
    REVIEWING = "reviewing"
    QUITTING = "quitting"


class Session:
    """One run of generate, review, then commit or quit."""

    def __init__(self, committer: Callable[[str], None], timeout: float,
                 logger: logging.Logger | None = None):
        self.committer = committer
        self.logger = logger or null_logger()
        self.keymap = new_keymap()

        self.input = TextInput(placeholder=PLACEHOLDER)
        self.spinner = Spinner()
        self.countdown = Countdown(timeout)

        self.streaming = True  # The first stream starts with init()
        self.suggestions: list[str] = []
        self.error: Exception | None = None
        self.farewell: str | None = None
        self.quitting = False

    @property
    def phase(self) -> Phase:
        if self.quitting:
            return Phase.QUITTING
        return Phase.STREAMING if self.streaming else Phase.REVIEWING

    @property
    def erred(self) -> bool:
        return self.error is not None

    @property
    def commit_message(self) -> str:
        return self.input.value.strip()

    def init(self) -> list[Command]:
        self.countdown.start()
        return [StartStream()]

    def update(self, msg: Message) -> list[Command]:
        if self.quitting:
            return []

        if isinstance(msg, ContentDelta):
            return self._on_delta(msg)
        if isinstance(msg, StreamError):
            return self._on_stream_error(msg)
        if isinstance(msg, EndOfStream):
            return self._on_end_of_stream()
        if isinstance(msg, KeyPress):
            return self._on_key(msg)
        if isinstance(msg, SpinnerTick):
            self.spinner.tick()
            return []
        if isinstance(msg, TimerTick):
            self.countdown.tick()
            return []
        raise TypeError(f"unexpected session message: {msg!r}")

    def _on_delta(self, msg: ContentDelta) -> list[Command]:
        if not self.streaming:
            return []
        if msg.text:
            self.input.insert(msg.text)
        if msg.stop:
            self.logger.debug("Model reported stop after %d chars", len(self.input.value))
        return [ReadNext()]

    def _on_stream_error(self, msg: StreamError) -> list[Command]:
        if isinstance(msg.error, StreamCancelled):
            self.logger.debug("Stream cancelled")
        else:
            self.logger.error("Stream error: %s", msg.error)
            self.error = msg.error
        return [ReadNext()] if self.streaming else []

    def _on_end_of_stream(self) -> list[Command]:
        if not self.streaming:
            return []
        self.streaming = False
        self.countdown.stop()

        suggestion = self.input.value
        if suggestion and suggestion not in self.suggestions:
            self.suggestions.append(suggestion)
        self.input.set_suggestions(self.suggestions)
        self.input.cursor = len(self.input.value)
        return []

    def _on_key(self, key: KeyPress) -> list[Command]:
        if self.keymap.quit.matches(key):
            self.quitting = True
            return [Quit()]

        if self.keymap.regen.matches(key):
            if self.streaming:
                self.logger.debug("Stream in progress, can't restart")
                return []
            return self._restart()

        if self.keymap.commit.matches(key):
            if self.streaming:
                self.logger.debug("Stream in progress, can't commit")
                return []
            return self._commit()

        # Input is locked while the model is writing
        if not self.streaming:
            self.input.handle_key(key)
        return []

    def _restart(self) -> list[Command]:
        self.input.reset()
        self.spinner.reset()
        self.countdown.start()
        self.error = None
        self.streaming = True
        return [StartStream()]

    def _commit(self) -> list[Command]:
        message = self.commit_message
        if not message:
            self.error = CommitError("cannot commit empty message")
            return []

        try:
            self.committer(message)
        except GitError as e:
            self.logger.error("Commit failed", exc_info=True)
            self.error = CommitError(f"failed to commit: {e}")
            return []

        self.farewell = FAREWELL
        self.quitting = True
        return [Quit()]

    def help_bindings(self) -> list[KeyBinding]:
        bindings = []
        if not self.streaming:
            if self.commit_message:
                bindings.append(self.keymap.commit)
            bindings.append(self.keymap.regen)
        bindings.append(self.keymap.quit)
        return bindings

    def view(self) -> str:
        if self.farewell:
            return f"{text_style(self.farewell)}\n"

        s = ""
        if self.error is not None:
            s += f"\n{error_style('ERROR: ' + str(self.error))}\n"

        if self.streaming:
            status = f"{self.spinner.view()} Generating response... ({self.countdown.view()})"
        else:
            status = "Model response:"
        s += f"\n{text_style(status)}\n"

        s += f"\n{self.input.view(focused=not self.streaming)}\n"
        s += f"\n{short_help(self.help_bindings())}\n"
        return s
