"""Configuration Management Package"""

import json
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from llcommit import DEFAULT_ENDPOINT

# Valid configuration values
VALID_PROVIDERS = {"llama", "claude"}


@dataclass
class Config:
    """User configuration with sensible defaults."""
    provider: str = "llama"
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 15.0  # Seconds the model has to finish responding
    model_type: str = "mistral"  # Prompt format name for llama endpoints
    model: Optional[str] = None  # Claude model override
    n_predict: int = 512
    temperature: float = 0.5
    log_directory: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def validate(self, model_types: Optional[set[str]] = None) -> list[str]:
        """Validate config values and return list of warnings.

        Invalid values are replaced with defaults after warning.
        """
        warnings = []
        defaults = Config()

        if self.provider not in VALID_PROVIDERS:
            warnings.append(f"Invalid provider '{self.provider}', using '{defaults.provider}'")
            self.provider = defaults.provider

        if not isinstance(self.endpoint, str) or not self.endpoint.startswith(("http://", "https://")):
            warnings.append(f"Invalid endpoint '{self.endpoint}', using '{defaults.endpoint}'")
            self.endpoint = defaults.endpoint

        if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            warnings.append(f"Invalid timeout '{self.timeout}', using {defaults.timeout}")
            self.timeout = defaults.timeout

        if model_types is not None and self.model_type not in model_types:
            warnings.append(f"Invalid model_type '{self.model_type}', using '{defaults.model_type}'")
            self.model_type = defaults.model_type

        if isinstance(self.n_predict, bool) or not isinstance(self.n_predict, int) or self.n_predict == 0 or self.n_predict < -1:
            warnings.append(f"Invalid n_predict '{self.n_predict}', using {defaults.n_predict}")
            self.n_predict = defaults.n_predict

        if isinstance(self.temperature, bool) or not isinstance(self.temperature, (int, float)) or self.temperature < 0:
            warnings.append(f"Invalid temperature '{self.temperature}', using {defaults.temperature}")
            self.temperature = defaults.temperature

        return warnings

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        config = cls(**filtered)
        for warning in config.validate():
            print(f"Config warning: {warning}", file=sys.stderr)
        return config


class ConfigManager:
    """Manages loading and saving configuration."""

    CONFIG_FILENAME = ".llcommitrc"

    def __init__(self):
        self._config: Optional[Config] = None
        self._config_path: Optional[Path] = None

    def load(self) -> Config:
        if self._config is not None:
            return self._config

        local_path = Path.cwd() / self.CONFIG_FILENAME
        if local_path.exists():
            self._config = self._load_from_file(local_path)
            self._config_path = local_path
            return self._config

        home_path = Path.home() / self.CONFIG_FILENAME
        if home_path.exists():
            self._config = self._load_from_file(home_path)
            self._config_path = home_path
            return self._config

        self._config = Config()
        return self._config

    def _load_from_file(self, path: Path) -> Config:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return Config.from_dict(data)
        except (json.JSONDecodeError, ValueError, IOError) as e:
            print(f"Warning: Could not load {path}: {e}", file=sys.stderr)
            return Config()

    def get_config_path(self) -> Optional[Path]:
        return self._config_path


_manager = ConfigManager()


def load_config() -> Config:
    return _manager.load()


def get_config_path() -> Optional[Path]:
    return _manager.get_config_path()


__all__ = [
    "Config",
    "ConfigManager",
    "load_config",
    "get_config_path",
    "VALID_PROVIDERS",
]
