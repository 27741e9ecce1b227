"""CLI Main Entry Point"""

import json
import logging
import os
from dataclasses import replace

from llcommit.cli.args import parse_args
from llcommit.cli.commands import display_config, run_install_completion
from llcommit.cli.utils import display_files
from llcommit.config import Config, load_config
from llcommit.git import GitRepo, GitError, NoStagedChanges
from llcommit.llm import CancelScope, CompletionRequest, LLMClient, LLMError, get_client
from llcommit.log import init_file_logging, null_logger
from llcommit.output import bold, dim, info, print_error, print_warning
from llcommit.prompts import PROMPT_FORMATS, PromptBuilder, resolve_model_type
from llcommit.session import CommitApp, Session


def _resolve_config(args, config: Config) -> Config:
    """Apply overrides to the loaded config.

    Precedence: CLI args > environment variables > config file
    """
    config = replace(config)

    env_endpoint = os.environ.get('MODEL_ENDPOINT')
    env_provider = os.environ.get('LLCOMMIT_PROVIDER')
    env_model_type = os.environ.get('LLCOMMIT_MODEL_TYPE')
    if env_endpoint:
        config.endpoint = env_endpoint
    if env_provider:
        config.provider = env_provider
    if env_model_type:
        try:
            config.model_type = resolve_model_type(env_model_type)
        except KeyError:
            config.model_type = env_model_type  # reported by validate()

    overrides = {
        'endpoint': args.endpoint,
        'timeout': args.timeout,
        'model_type': args.model_type,
        'provider': args.provider,
        'model': args.model,
        'n_predict': args.n_predict,
        'temperature': args.temperature,
        'log_directory': args.log_directory,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)

    return config


def _init_logging(args, config: Config) -> logging.Logger:
    if not args.log:
        return null_logger()

    dirs = [config.log_directory] if config.log_directory else []
    logger = init_file_logging(*dirs)
    logger.debug("Connecting to %r...", config.endpoint)
    logger.debug("Configuration: %s", json.dumps(config.to_dict(), indent=2))
    return logger


def _get_staged_diff(repo: GitRepo, paths: list[str]) -> str | None:
    """Staged diff, or None after telling the user what to stage."""
    try:
        return repo.staged_diff(*paths)
    except NoStagedChanges:
        print("No staged files found. 'git add' one of these files to proceed:")
        print(repo.status(), end='')
        return None


def _build_request(diff: str, config: Config) -> CompletionRequest:
    model_type = config.model_type if config.provider == 'llama' else None
    return CompletionRequest(
        prompt=PromptBuilder().build(diff, model_type),
        temperature=config.temperature,
        n_predict=config.n_predict,
    )


def run_session(client: LLMClient, repo: GitRepo, request: CompletionRequest,
                timeout: float, logger: logging.Logger) -> int:
    """Stream, review and maybe commit. Returns the exit code."""
    scope = CancelScope()
    session = Session(committer=repo.commit, timeout=timeout, logger=logger)
    app = CommitApp(session, client, request, scope, logger=logger)
    app.run()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    if args.install_completion:
        return run_install_completion()

    config = _resolve_config(args, load_config())
    for warning in config.validate(set(PROMPT_FORMATS)):
        print_warning(f"Config warning: {warning}")

    if args.display_config:
        return display_config(config)

    try:
        logger = _init_logging(args, config)
    except OSError as e:
        print_error(f"Failed to init file logging: {e}")
        return 1

    try:
        repo = GitRepo(logger=logger)
        diff = _get_staged_diff(repo, args.paths)
        if diff is None:
            return 0
        files = repo.staged_files()
    except GitError as e:
        logger.error("Git failed", exc_info=True)
        print_error(str(e))
        return 1

    request = _build_request(diff, config)
    logger.debug("Completion request: %d prompt chars, n_predict=%d, temperature=%s",
                 len(request.prompt), request.n_predict, request.temperature)

    try:
        client = get_client(config.provider, endpoint=config.endpoint, model=config.model,
                            timeout=config.timeout, logger=logger)
    except LLMError as e:
        print_error(str(e))
        return 1

    display_files(files)
    print(f"Generating with {info(client.name)} {dim('(' + bold('esc') + ' to quit)')}")
    return run_session(client, repo, request, config.timeout, logger)
