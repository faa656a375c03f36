"""Configuration management for the chat client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from ollama_chat.llm.models import ProviderConfig

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for endpoint overrides
        self._config = self._load_yaml_config(config_path or DEFAULT_CONFIG_PATH)

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
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def llm_api_key(self) -> str | None:
        """Get the optional bearer token for the endpoint.

        A local Ollama server needs none; hosted gateways usually do.
        """
        return os.getenv("OLLAMA_API_KEY") or None

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_llm_config(self) -> dict[str, Any]:
        """Get the LLM endpoint configuration from YAML.

        ``OLLAMA_BASE_URL`` and ``OLLAMA_MODEL`` override the file.

        Raises:
            ValueError: If a required parameter is missing.
        """
        llm_config = dict(self._config.get("llm", {}))

        if base_url := os.getenv("OLLAMA_BASE_URL"):
            llm_config["base_url"] = base_url
        if model := os.getenv("OLLAMA_MODEL"):
            llm_config["model"] = model

        required_keys = ["base_url", "model", "chat_path"]
        for key in required_keys:
            if not llm_config.get(key):
                raise ValueError(
                    f"llm.{key} must be explicitly configured in config.yaml"
                )

        stream = llm_config.get("stream", True)
        if not isinstance(stream, bool):
            raise ValueError("llm.stream must be a boolean")
        llm_config["stream"] = stream

        system_prompt = llm_config.get("system_prompt")
        if system_prompt is not None and not isinstance(system_prompt, str):
            raise ValueError("llm.system_prompt must be a string or null")

        return llm_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client timeouts for the endpoint.

        ``read_timeout`` may be null: a stream is then allowed to stay quiet
        for as long as the model needs.

        Raises:
            ValueError: If a timeout is missing or not a non-negative number.
        """
        http_config = self._config.get("llm", {}).get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"llm.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )

        for key in required_keys:
            value = http_config[key]
            if value is None and key == "read_timeout":
                continue
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ValueError(f"llm.http_client.{key} must be a number")
            if value < 0:
                raise ValueError(f"llm.http_client.{key} must be >= 0")

        return http_config

    def get_provider_config(self) -> ProviderConfig:
        """Build the transport settings from the LLM and HTTP client sections."""
        llm_config = self.get_llm_config()
        http_config = self.get_http_client_config()
        return ProviderConfig(
            base_url=llm_config["base_url"],
            model=llm_config["model"],
            chat_path=llm_config["chat_path"],
            api_key=self.llm_api_key,
            connect_timeout=http_config["connect_timeout"],
            read_timeout=http_config["read_timeout"],
            write_timeout=http_config["write_timeout"],
            pool_timeout=http_config["pool_timeout"],
        )

    def get_chat_service_config(self) -> dict[str, Any]:
        """Get chat service configuration from YAML.

        Returns:
            Chat service configuration dictionary.
        """
        return self._config.get("chat", {}).get("service", {})

    def get_notices_config(self) -> dict[str, str]:
        """Get the user-facing notice texts.

        Raises:
            ValueError: If a notice is missing or the backend template lacks
                its placeholders.
        """
        notices = self.get_chat_service_config().get("notices", {})

        required_keys = ["cancelled", "failed", "network_error", "backend_error"]
        for key in required_keys:
            if not isinstance(notices.get(key), str) or not notices[key]:
                raise ValueError(
                    f"chat.service.notices.{key} must be explicitly configured "
                    "in config.yaml"
                )

        template = notices["backend_error"]
        if "{message}" not in template:
            raise ValueError(
                "chat.service.notices.backend_error must contain {message}"
            )

        return notices

    def get_streaming_config(self) -> dict[str, Any]:
        """Get stream reassembly configuration from YAML.

        Raises:
            ValueError: If a value has the wrong type or range.
        """
        streaming_config = dict(
            self.get_chat_service_config().get("streaming", {})
        )

        string_aware = streaming_config.setdefault("string_aware", True)
        if not isinstance(string_aware, bool):
            raise ValueError("streaming.string_aware must be a boolean")

        max_buffer = streaming_config.setdefault("max_buffer_chars", 1024 * 1024)
        if max_buffer is not None and (
            isinstance(max_buffer, bool)
            or not isinstance(max_buffer, int)
            or max_buffer < 1
        ):
            raise ValueError(
                "streaming.max_buffer_chars must be a positive integer or null"
            )

        return streaming_config

    def get_include_history(self) -> bool:
        include_history = self.get_chat_service_config().get("include_history", True)
        if not isinstance(include_history, bool):
            raise ValueError("chat.service.include_history must be a boolean")
        return include_history

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
