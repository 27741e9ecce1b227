"""CLI Utility Functions"""

import math
import re

from llcommit.git import GitFiles
from llcommit.output import bold, dim

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
_UNIT_SECONDS = {'h': 3600.0, 'm': 60.0, 's': 1.0, 'ms': 0.001}


def parse_duration(text: str) -> float:
    """Parse '15s', '1m30s', '500ms' or bare seconds into seconds."""
    text = text.strip().lower()
    if not text:
        raise ValueError("empty duration")

    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            raise ValueError(f"invalid duration: {text!r}")

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {text!r}")
    return seconds


def display_files(files: GitFiles, max_shown: int = 8) -> None:
    """Show the files going into the commit, collapsing long lists."""
    if files.tracked:
        print(bold("Files to be committed:"))
        for path in files.tracked[:max_shown]:
            print(dim(f"  {path}"))
        remaining = len(files.tracked) - max_shown
        if remaining > 0:
            print(dim(f"  ... and {remaining} more files"))
    if files.untracked:
        print(dim(f"  {len(files.untracked)} untracked files not included"))
