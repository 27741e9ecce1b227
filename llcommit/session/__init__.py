"""Interactive commit session"""

from llcommit.session.app import CommitApp
from llcommit.session.bridge import EventBridge
from llcommit.session.machine import CommitError, Phase, Session, FAREWELL
from llcommit.session.messages import (
    Message, Command, ContentDelta, StreamError, EndOfStream, KeyPress, SpinnerTick, TimerTick,
    StartStream, ReadNext, Quit, RUNES,
)

__all__ = [
    "CommitApp",
    "EventBridge",
    "CommitError",
    "Phase",
    "Session",
    "FAREWELL",
    "Message",
    "Command",
    "ContentDelta",
    "StreamError",
    "EndOfStream",
    "KeyPress",
    "SpinnerTick",
    "TimerTick",
    "StartStream",
    "ReadNext",
    "Quit",
    "RUNES",
]
