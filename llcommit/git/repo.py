"""Git Repository - Staged diff, status and commit through the git CLI."""

import logging
import subprocess
from dataclasses import dataclass, field

from llcommit.log import null_logger


class GitError(Exception):
    """Raised when git operations fail."""
    pass


class RepositoryNotFound(GitError):
    """Raised when the working directory is not inside a git repository."""
    pass


class NoStagedChanges(GitError):
    """Raised when there is nothing staged to describe."""
    pass


@dataclass
class GitFiles:
    """Files from 'git status', split by whether git tracks them."""
    tracked: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)


class GitRepo:
    """The git repository containing the current working directory."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or null_logger()
        self._verify_git_available()
        self.git_dir = self._verify_in_repo()
        self.logger.debug("Opened git repo at %s", self.git_dir)

    def _run_git(self, *args: str, input: str | None = None) -> str:
        """Run a git command and return stdout."""
        try:
            result = subprocess.run(
                ['git', *args],
                input=input,
                capture_output=True,
                text=True,
                check=True,
                encoding='utf-8',
                errors='replace'
            )
            return result.stdout
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git command failed: git {' '.join(args)}\n{e.stderr}")
        except FileNotFoundError:
            raise GitError("Git is not installed or not in PATH")

    def _verify_git_available(self) -> None:
        """Fail fast if git isn't available."""
        try:
            self._run_git('--version')
        except GitError:
            raise GitError("Git is not installed or not in PATH")

    def _verify_in_repo(self) -> str:
        """Fail fast if we're not in a git repository."""
        try:
            return self._run_git('rev-parse', '--git-dir').strip()
        except GitError:
            raise RepositoryNotFound(
                "Repository not found: make sure you are running this command inside a git repository."
            )

    def staged_diff(self, *paths: str) -> str:
        """Diff of everything staged, or only of the given paths."""
        args = ['diff', '--staged']
        if paths:
            args += ['--', *paths]
        diff = self._run_git(*args)
        if not diff.strip():
            raise NoStagedChanges("no staged files")
        return diff

    def status(self) -> str:
        return self._run_git('status', '--short')

    def staged_files(self) -> GitFiles:
        """Parse 'git status --porcelain': staged entries and untracked files."""
        files = GitFiles()
        for line in self._run_git('status', '--porcelain').splitlines():
            if len(line) < 4:
                continue
            index_state, path = line[0], line[3:]
            if ' -> ' in path:
                path = path.split(' -> ', 1)[1]
            if line[:2] == '??':
                files.untracked.append(path)
            elif index_state != ' ':
                files.tracked.append(path)

        files.tracked.sort()
        files.untracked.sort()
        return files

    def commit(self, message: str) -> None:
        """Commit the staged changes with the message read from stdin."""
        self.logger.debug("Committing %d chars", len(message))
        self._run_git('commit', '--file', '-', input=message)
