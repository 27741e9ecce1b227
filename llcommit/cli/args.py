"""CLI Argument Parsing"""

import argparse
import argcomplete

from llcommit import __version__
from llcommit.cli.utils import parse_duration
from llcommit.llm import PROVIDERS
from llcommit.prompts import PROMPT_FORMATS, resolve_model_type


def _duration(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _model_type(text: str) -> str:
    try:
        return resolve_model_type(text)
    except KeyError:
        raise argparse.ArgumentTypeError(
            f"unknown model type '{text}' (choose from {', '.join(sorted(PROMPT_FORMATS))})"
        )


def _model_type_completer(prefix, **kwargs):
    return [name for name in sorted(PROMPT_FORMATS) if name.startswith(prefix)]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='llcommit',
        description='Suggest a commit message for staged changes with a local LLM',
        epilog='Example: llcommit -m llama3 (stream a suggestion, enter to commit)'
    )

    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('paths', nargs='*', metavar='PATH', help='Only describe staged changes in these paths')

    # Model options
    parser.add_argument('-e', '--endpoint', type=str, metavar='URL', help='Completion endpoint (env: MODEL_ENDPOINT)')
    parser.add_argument('-t', '--timeout', type=_duration, metavar='DURATION', help='Time the model has to respond, e.g. 15s or 1m (default: 15s)')
    model_type = parser.add_argument('-m', '--model-type', type=_model_type, metavar='TYPE', help='Prompt format of the served model (default: mistral)')
    model_type.completer = _model_type_completer
    parser.add_argument('-p', '--provider', type=str, choices=sorted(PROVIDERS), help='Completion backend (default: llama)')
    parser.add_argument('--model', type=str, metavar='MODEL', help='Model name for the Claude provider')
    parser.add_argument('--n-predict', type=int, metavar='N', help='Maximum tokens to generate, -1 for no limit')
    parser.add_argument('--temperature', type=float, metavar='T', help='Sampling temperature')

    # Logging
    parser.add_argument('-l', '--log', action='store_true', help='Enable debug logs')
    parser.add_argument('-d', '--log-directory', type=str, metavar='DIR', help='Directory for logs (default: /tmp/, then /tmp/var/)')

    # Setup/config
    parser.add_argument('--display-config', action='store_true', help='Show current configuration')
    parser.add_argument('--install-completion', action='store_true', help='Install shell tab completion')

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    argcomplete.autocomplete(parser)
    return parser.parse_args(argv)
