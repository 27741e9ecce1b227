"""
llcommit

Streams commit message suggestions for staged git changes from a local model.
"""

__version__ = "0.3.0"

# Subject length from the 50/72 rule for git commit messages
COMMIT_SUBJECT_CHARS = 50

DEFAULT_ENDPOINT = "http://127.0.0.1:8080/completion"
