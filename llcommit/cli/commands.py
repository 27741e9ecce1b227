"""CLI Commands"""

import os
import sys

from llcommit.config import Config, get_config_path
from llcommit.output import bold, dim, info


def display_config(config: Config) -> int:
    """Display the effective configuration."""
    config_path = get_config_path()

    print(f"\n{bold('Current Configuration')}\n")

    if config_path:
        print(f"  {dim('Loaded from:')} {config_path}")
    else:
        print(f"  {dim('Loaded from:')} defaults (no .llcommitrc found)")

    env_overrides = {
        name: os.environ[name]
        for name in ('MODEL_ENDPOINT', 'LLCOMMIT_PROVIDER', 'LLCOMMIT_MODEL_TYPE')
        if os.environ.get(name)
    }
    if env_overrides:
        print(f"  {dim('Environment overrides:')}")
        for name, value in env_overrides.items():
            print(f"    {name}={value}")

    print()
    print(f"  {bold('Settings:')}")
    settings = config.to_dict()
    width = max(len(key) for key in settings) + 1
    for key, value in settings.items():
        print(f"    {(key + ':').ljust(width)} {info(str(value))}")

    print(f"\n  {dim('Config locations:')}")
    print(f"    Local:  .llcommitrc (in current directory)")
    print(f"    Global: ~/.llcommitrc\n")

    return 0


def run_install_completion() -> int:
    """Install shell tab completion."""
    shell = os.environ.get('SHELL', '')

    print(f"\n{bold('Tab Completion Setup')}\n")

    if 'zsh' in shell or 'bash' in shell:
        rc_file = os.path.expanduser('~/.zshrc' if 'zsh' in shell else '~/.bashrc')
        print(f"Add this line to {dim(rc_file)}:\n")
        print('  eval "$(register-python-argcomplete llcommit)"\n')
        print(f"Then run: {dim('source ' + rc_file)}")
    elif sys.platform == 'win32':
        print("For PowerShell, run:\n")
        print("  register-python-argcomplete --shell powershell llcommit | Out-String | Invoke-Expression\n")
        print("To make it permanent, add it to your $PROFILE.")
    else:
        print("Run one of these based on your shell:\n")
        print(f"  {dim('# Bash/Zsh')}")
        print('  eval "$(register-python-argcomplete llcommit)"\n')
        print(f"  {dim('# Fish')}")
        print("  register-python-argcomplete --shell fish llcommit | source")

    print(f"\n{dim('After setup, press TAB to autocomplete flags.')}")
    return 0
