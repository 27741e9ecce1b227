"""Git Operations Package"""

from llcommit.git.repo import GitRepo, GitError, RepositoryNotFound, NoStagedChanges, GitFiles

__all__ = [
    "GitRepo",
    "GitError",
    "RepositoryNotFound",
    "NoStagedChanges",
    "GitFiles",
]
