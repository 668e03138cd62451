"""Configuration management for the marketplace search service.

Secrets and deployment-specific values (backend vendor, credentials, hosts)
come from environment variables via pydantic-settings. Tunable parameters
(scoring weights, TTLs, page sizes) live in a YAML file that may reference
environment variables with the ``${VAR_NAME:default}`` syntax.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

_ENV_PATTERN = re.compile(r"\$\{(\w+):([^}]*)\}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        search_vendor: Identifier of the active search backend
            (``algolia``, ``elastic``, ``database`` or ``none``).
        db_path: Path to the SQLite catalog database.
        redis_host: Hostname for Redis connection.
        redis_port: Port for Redis connection.
        algolia_app_id: Hosted index application id.
        algolia_admin_api_key: Hosted index key with write access.
        algolia_search_api_key: Hosted index key used for queries.
        algolia_index_resources: Name of the hosted resources index.
        elastic_node_url: Base URL of the cluster node.
        elastic_username: Cluster basic-auth user.
        elastic_password: Cluster basic-auth password.
        elastic_index_resources: Alias that serves the resources index.
        config_path: Path to the YAML configuration file.
    """

    search_vendor: str = Field(default="database")
    db_path: str = Field(default="data/catalog.db")
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)

    algolia_app_id: str = Field(default="")
    algolia_admin_api_key: str = Field(default="")
    algolia_search_api_key: str = Field(default="")
    algolia_index_resources: str = Field(default="marketplace_resources")

    elastic_node_url: str = Field(default="http://localhost:9200")
    elastic_username: str = Field(default="")
    elastic_password: str = Field(default="")
    elastic_index_resources: str = Field(default="marketplace_resources")

    config_path: str = Field(default="configs/config.yaml")

    model_config = {"env_file": ".env", "extra": "ignore"}


def _resolve_env_vars(value: str) -> str:
    """Resolve environment variable references in config values.

    Supports the syntax ${VAR_NAME:default_value}.

    Args:
        value: The string potentially containing env var references.

    Returns:
        The resolved string with env var values substituted.
    """
    if not isinstance(value, str) or "${" not in value:
        return value

    match = _ENV_PATTERN.match(value)
    if match:
        env_var, default = match.groups()
        return os.environ.get(env_var, default)
    return value


def _resolve_config(config: dict) -> dict:
    """Recursively resolve environment variables in config dict.

    Args:
        config: Configuration dictionary with potential env var references.

    Returns:
        Configuration dictionary with all env vars resolved.
    """
    resolved = {}
    for key, value in config.items():
        if isinstance(value, dict):
            resolved[key] = _resolve_config(value)
        elif isinstance(value, str):
            resolved[key] = _resolve_env_vars(value)
        else:
            resolved[key] = value
    return resolved


def load_config(path: str = "configs/config.yaml") -> dict[str, Any]:
    """Load and parse the YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed configuration as a nested dictionary.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path) as f:
        raw_config = yaml.safe_load(f) or {}

    return _resolve_config(raw_config)


settings = Settings()
config = load_config(settings.config_path)
