"""Configuration management for the chatstream transport."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from .transport.exceptions import ConfigurationError

BASE_URL_ENV = "CHATSTREAM_BASE_URL"
PAYLOAD_ENCODINGS = ("form", "json")


class Configuration:
    """Manages configuration and environment variables for chatstream."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to load; defaults to the packaged config.yaml.
        """
        self.load_env()
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ConfigurationError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @staticmethod
    def _require(section: str, values: dict[str, Any], keys: list[str]) -> None:
        for key in keys:
            if key not in values:
                raise ConfigurationError(
                    f"{section}.{key} must be explicitly configured in config.yaml"
                )

    @staticmethod
    def _check_encoding(section: str, encoding: str) -> None:
        if encoding not in PAYLOAD_ENCODINGS:
            raise ConfigurationError(
                f"{section}.payload_encoding must be one of: {PAYLOAD_ENCODINGS}"
            )

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ConfigurationError: If required parameters are missing or invalid.
        """
        http_config = {**self._config.get("http_client", {})}

        env_base_url = os.getenv(BASE_URL_ENV)
        if env_base_url:
            http_config["base_url"] = env_base_url

        self._require("http_client", http_config, [
            "base_url", "connect_timeout", "read_timeout", "write_timeout",
            "pool_timeout", "max_connections", "max_keepalive",
        ])

        for key in ("connect_timeout", "read_timeout", "write_timeout", "pool_timeout"):
            if http_config[key] <= 0:
                raise ConfigurationError(f"http_client.{key} must be positive")

        max_conn = http_config["max_connections"]
        if max_conn < 1:
            raise ConfigurationError("http_client.max_connections must be at least 1")
        if http_config["max_keepalive"] > max_conn:
            raise ConfigurationError(
                "http_client.max_keepalive must be <= max_connections"
            )

        return http_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration.

        Raises:
            ConfigurationError: If required parameters are missing or invalid.
        """
        streaming_config = self._config.get("streaming", {})
        self._require("streaming", streaming_config, [
            "enabled", "endpoint", "method", "payload_encoding",
        ])
        self._check_encoding("streaming", streaming_config["payload_encoding"])

        return streaming_config

    def get_polling_config(self) -> dict[str, Any]:
        """Get polling fallback configuration.

        Raises:
            ConfigurationError: If required parameters are missing or invalid.
        """
        polling_config = self._config.get("polling", {})
        self._require("polling", polling_config, [
            "endpoint", "method", "payload_encoding", "interval", "cursor_field",
        ])
        self._check_encoding("polling", polling_config["payload_encoding"])

        if polling_config["interval"] <= 0:
            raise ConfigurationError("polling.interval must be positive")

        return polling_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration."""
        logging_config = self._config.get("logging", {})
        self._require("logging", logging_config, ["level"])
        return logging_config
