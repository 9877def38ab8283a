import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_TOKEN_LIMIT = 1_000_000

DEFAULT_CONFIG: dict = {
    "ai_provider": "openai",
    "token_limit_per_24h": DEFAULT_TOKEN_LIMIT,
    "db_path": ".prwarden.db",
    "github_timeout": 30,
    "ai_timeout": 60,
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "react_to_replies": True,
    "webhook_path": "/api/webhook/github",
}

# Environment variables the webhook server cannot start without.
_REQUIRED_SERVER_ENV = {
    "github_app_id": "GITHUB_APP_ID",
    "github_private_key": "GITHUB_PRIVATE_KEY",
    "webhook_secret": "GITHUB_WEBHOOK_SECRET",
}


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""


def parse_token_limit(value) -> int:
    """Return the 24h token ceiling as a positive int, or raise ConfigError."""
    if isinstance(value, bool):
        raise ConfigError(f"token_limit_per_24h must be a positive integer, got {value!r}")
    try:
        limit = int(str(value).strip().replace("_", ""))
    except ValueError:
        raise ConfigError(f"token_limit_per_24h must be a positive integer, got {value!r}")
    if limit <= 0:
        raise ConfigError(f"token_limit_per_24h must be a positive integer, got {value!r}")
    return limit


def load_config(config_path: str = ".prwarden.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prwarden.yml in the current directory
      3. CLI argument overrides
      4. Environment variables (credentials, provider choice, token ceiling)
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if os.environ.get("AI_PROVIDER"):
        config["ai_provider"] = os.environ["AI_PROVIDER"]
    if os.environ.get("TOKEN_LIMIT_PER_24H"):
        config["token_limit_per_24h"] = os.environ["TOKEN_LIMIT_PER_24H"]
    config["token_limit_per_24h"] = parse_token_limit(config["token_limit_per_24h"])

    # Resolve credentials from environment variables
    private_key = os.environ.get("GITHUB_PRIVATE_KEY")
    secret = os.environ.get("GITHUB_WEBHOOK_SECRET")
    config["github_app_id"] = os.environ.get("GITHUB_APP_ID")
    # Keys pasted into a single-line env var arrive with literal "\n" sequences.
    config["github_private_key"] = private_key.replace("\\n", "\n") if private_key else None
    config["webhook_secret"] = secret.strip() if secret else None
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["openai_organization"] = os.environ.get("OPENAI_ORGANIZATION")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

    return config


def validate_server_config(config: dict) -> None:
    """Raise ConfigError naming the first credential the webhook server is missing."""
    for key, env_name in _REQUIRED_SERVER_ENV.items():
        if not config.get(key):
            raise ConfigError(f"{env_name} environment variable is required")

    provider = config.get("ai_provider")
    if provider in ("anthropic", "claude") and not config.get("anthropic_api_key"):
        raise ConfigError("ANTHROPIC_API_KEY environment variable is required")
    if provider == "openai" and not config.get("openai_api_key"):
        raise ConfigError("OPENAI_API_KEY environment variable is required")
