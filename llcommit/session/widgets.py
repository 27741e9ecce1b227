"""Small terminal widgets owned by the session: key bindings, the editable
input line, the spinner, the countdown and the help line."""

from dataclasses import dataclass, field

from llcommit.output import COLORS_ENABLED, SPINNER_FRAMES, bold, dim
from llcommit.session.messages import KeyPress, RUNES

REVERSE = '\033[7m'
RESET = '\033[0m'


def format_duration(seconds: float) -> str:
    """Compact duration, e.g. 15s, 1m5s, 1h0m0s."""
    total = max(0, int(round(seconds)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class KeyBinding:
    name: str
    keys: tuple[str, ...]
    help_key: str
    help_text: str

    def matches(self, key: KeyPress) -> bool:
        return key.key in self.keys


@dataclass(frozen=True)
class Keymap:
    commit: KeyBinding
    regen: KeyBinding
    quit: KeyBinding


def new_keymap() -> Keymap:
    return Keymap(
        commit=KeyBinding("commit", ("enter",), "enter", "commit"),
        regen=KeyBinding("regen", ("c-r",), "ctrl+r", "regenerate"),
        quit=KeyBinding("quit", ("c-c", "escape"), "esc", "quit"),
    )


def short_help(bindings: list[KeyBinding]) -> str:
    return dim(" • ").join(f"{bold(b.help_key)} {dim(b.help_text)}" for b in bindings)


@dataclass
class TextInput:
    """Single editable line with completion from earlier suggestions."""
    placeholder: str = ""
    value: str = ""
    cursor: int = 0
    suggestions: list[str] = field(default_factory=list)
    _suggestion_index: int = field(default=0, repr=False)

    def reset(self) -> None:
        self.value = ""
        self.cursor = 0
        self._suggestion_index = 0

    def set_value(self, value: str) -> None:
        self.value = value
        self.cursor = len(value)

    def insert(self, text: str) -> None:
        # Pasted text and model output may carry newlines; a commit subject is one line
        text = text.replace("\r", "").replace("\n", " ")
        self.value = self.value[:self.cursor] + text + self.value[self.cursor:]
        self.cursor += len(text)
        self._suggestion_index = 0

    def set_suggestions(self, suggestions: list[str]) -> None:
        self.suggestions = list(suggestions)
        self._suggestion_index = 0

    def matched_suggestions(self) -> list[str]:
        prefix = self.value.lower()
        return [s for s in self.suggestions if s.lower().startswith(prefix) and s != self.value]

    def current_suggestion(self) -> str | None:
        matches = self.matched_suggestions()
        if not matches:
            return None
        return matches[self._suggestion_index % len(matches)]

    def handle_key(self, key: KeyPress) -> bool:
        """Apply an editing key. Returns False for keys this widget ignores."""
        if key.key == RUNES:
            self.insert(key.text)
        elif key.key == "backspace":
            if self.cursor > 0:
                self.value = self.value[:self.cursor - 1] + self.value[self.cursor:]
                self.cursor -= 1
        elif key.key == "delete":
            self.value = self.value[:self.cursor] + self.value[self.cursor + 1:]
        elif key.key == "left":
            self.cursor = max(0, self.cursor - 1)
        elif key.key == "right":
            self.cursor = min(len(self.value), self.cursor + 1)
        elif key.key in ("home", "c-a"):
            self.cursor = 0
        elif key.key in ("end", "c-e"):
            self.cursor = len(self.value)
        elif key.key == "c-u":
            self.value = self.value[self.cursor:]
            self.cursor = 0
        elif key.key == "c-k":
            self.value = self.value[:self.cursor]
        elif key.key in ("down", "c-n"):
            self._suggestion_index += 1
        elif key.key in ("up", "c-p"):
            self._suggestion_index -= 1
        elif key.key == "tab":
            suggestion = self.current_suggestion()
            if suggestion is not None:
                self.set_value(suggestion)
        else:
            return False
        return True

    def view(self, focused: bool = True) -> str:
        prompt = "> "
        if not focused:
            return prompt + (self.value or dim(self.placeholder))

        suggestion = self.current_suggestion()
        completion = suggestion[len(self.value):] if suggestion else ""
        if not self.value and not completion:
            return prompt + self._cursor(" ") + dim(self.placeholder)

        before, after = self.value[:self.cursor], self.value[self.cursor:]
        if after:
            return prompt + before + self._cursor(after[0]) + after[1:] + dim(completion)
        if completion:
            return prompt + before + self._cursor(completion[0]) + dim(completion[1:])
        return prompt + before + self._cursor(" ")

    @staticmethod
    def _cursor(char: str) -> str:
        return f"{REVERSE}{char}{RESET}" if COLORS_ENABLED else char


@dataclass
class Spinner:
    """Frame-by-frame spinner advanced by ticks."""
    interval: float = 0.1
    frames: list[str] = field(default_factory=lambda: list(SPINNER_FRAMES))
    frame: int = 0

    def tick(self) -> None:
        self.frame = (self.frame + 1) % len(self.frames)

    def reset(self) -> None:
        self.frame = 0

    def view(self) -> str:
        return self.frames[self.frame]


@dataclass
class Countdown:
    """Counts down from the request timeout, one tick per interval."""
    timeout: float
    interval: float = 1.0
    remaining: float = 0.0
    running: bool = False

    def __post_init__(self):
        self.remaining = self.timeout

    def start(self) -> None:
        self.remaining = self.timeout
        self.running = True

    def stop(self) -> None:
        self.running = False

    def tick(self) -> None:
        if not self.running:
            return
        self.remaining = max(0.0, self.remaining - self.interval)
        if self.remaining == 0:
            self.running = False

    def view(self) -> str:
        return format_duration(self.remaining)
