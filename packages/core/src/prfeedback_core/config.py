import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "transport": "auto",  # "api" (PyGithub), "gh" (GitHub CLI) or "auto"
    "reply_delay_ms": 100,
    "per_page": 100,
    "error_payload_chars": 500,
    "gh_path": "gh",
    "api_url": None,  # None = github.com; set for GitHub Enterprise (https://host/api/v3)
}

TRANSPORTS = ("auto", "api", "gh")


def load_config(config_path: str = ".prfeedback.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prfeedback.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            try:
                file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping, got {type(file_config).__name__}.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["transport"] not in TRANSPORTS:
        raise ValueError(f"Unknown transport: {config['transport']!r}. Choose one of {', '.join(TRANSPORTS)}.")

    config["github_token"] = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")

    return config
