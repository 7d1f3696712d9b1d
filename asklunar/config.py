"""Configuration management for the askLunar reading client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

AUTH_TOKEN_ENV = "LUNAR_AUTH_TOKEN"


class Configuration:
    """Manages configuration and environment variables for the reading client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for the auth token
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def auth_token(self) -> str | None:
        """Get the bearer token handed over by the sign-in flow.

        Returns:
            The token, or None when nobody is signed in. The reading client
            substitutes a placeholder credential in that case.
        """
        token = os.getenv(AUTH_TOKEN_ENV)
        return token or None

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_stream_config(self) -> dict[str, Any]:
        """Get streaming connection configuration from YAML.

        Returns:
            Stream configuration dictionary with validated values.

        Raises:
            ValueError: If required stream parameters are missing or invalid.
        """
        stream_config = self._config.get("stream", {})

        required_keys = [
            "base_url", "endpoint", "connect_timeout", "read_timeout",
            "max_buffer_size", "retry"
        ]
        for key in required_keys:
            if key not in stream_config:
                raise ValueError(
                    f"stream.{key} must be explicitly configured in config.yaml"
                )

        if stream_config["connect_timeout"] <= 0:
            raise ValueError("stream.connect_timeout must be positive")
        if stream_config["read_timeout"] <= 0:
            raise ValueError("stream.read_timeout must be positive")
        if stream_config["max_buffer_size"] < 1:
            raise ValueError("stream.max_buffer_size must be at least 1")

        self._validate_retry_config(stream_config["retry"])
        return stream_config

    def _validate_retry_config(self, retry_config: dict[str, Any]) -> None:
        """Validate the stream.retry section."""
        required_keys = [
            "max_retries", "initial_retry_delay", "backoff_multiplier", "max_jitter"
        ]
        for key in required_keys:
            if key not in retry_config:
                raise ValueError(
                    f"stream.retry.{key} must be explicitly configured "
                    "in config.yaml"
                )

        if not isinstance(retry_config["max_retries"], int) or (
            retry_config["max_retries"] < 0
        ):
            raise ValueError("stream.retry.max_retries must be a non-negative integer")
        if retry_config["initial_retry_delay"] < 0:
            raise ValueError("stream.retry.initial_retry_delay must be non-negative")
        if retry_config["backoff_multiplier"] < 1:
            raise ValueError("stream.retry.backoff_multiplier must be >= 1")
        if retry_config["max_jitter"] < 0:
            raise ValueError("stream.retry.max_jitter must be non-negative")

    def get_reading_config(self) -> dict[str, Any]:
        """Get the default reading parameters from YAML.

        Raises:
            ValueError: If required reading parameters are missing.
        """
        reading_config = self._config.get("reading", {})

        required_keys = ["card_name", "card_id", "orientation", "spread_id"]
        for key in required_keys:
            if key not in reading_config:
                raise ValueError(
                    f"reading.{key} must be explicitly configured in config.yaml"
                )

        if reading_config["orientation"] not in ("upright", "reversed"):
            raise ValueError("reading.orientation must be 'upright' or 'reversed'")

        return reading_config

    def get_repository_config(self) -> dict[str, Any]:
        """Get repository configuration from YAML.

        Returns:
            Repository configuration with path and persistence settings.

        Raises:
            ValueError: If required repository parameters are missing.
        """
        repo_config = {**self._config.get("repository", {})}

        if "persistence" not in repo_config:
            raise ValueError(
                "repository.persistence must be explicitly configured in config.yaml"
            )

        persistence_config = repo_config["persistence"]
        required_keys = [
            "enabled", "retention_policy", "max_readings", "retention_days",
            "clear_on_startup"
        ]
        for key in required_keys:
            if key not in persistence_config:
                raise ValueError(
                    f"repository.persistence.{key} must be explicitly configured "
                    "in config.yaml"
                )

        valid_policies = ["unlimited", "count_limit", "time_based"]
        if persistence_config["retention_policy"] not in valid_policies:
            raise ValueError(
                "repository.persistence.retention_policy must be one of: "
                f"{valid_policies}"
            )

        return repo_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})

    def get_display_config(self) -> dict[str, Any]:
        """Get console display configuration from YAML."""
        return self._config.get("display", {})
