#!/usr/bin/env python3
"""
Test explicit configuration requirements.
"""

import pytest
import yaml

from ollama_chat.chat_service import ChatSession
from ollama_chat.config import Configuration

BASE_CONFIG = {
    "llm": {
        "base_url": "http://localhost:11434",
        "chat_path": "/api/chat",
        "model": "gemma3:4b",
        "stream": True,
        "system_prompt": "Be brief.",
        "http_client": {
            "connect_timeout": 5.0,
            "read_timeout": None,
            "write_timeout": 5.0,
            "pool_timeout": 5.0,
        },
    },
    "chat": {
        "service": {
            "include_history": True,
            "notices": {
                "cancelled": "Request cancelled.",
                "failed": "Sorry, something went wrong.",
                "network_error": "Network error: server unreachable.",
                "backend_error": "Ollama API Error: {message}",
            },
            "streaming": {"string_aware": True, "max_buffer_chars": 4096},
        }
    },
    "logging": {"level": "DEBUG"},
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OLLAMA_BASE_URL", "OLLAMA_MODEL", "OLLAMA_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_config(tmp_path):
    def write(data):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data))
        return Configuration(str(path))
    return write


def with_overrides(section_path, **values):
    """Deep-copy BASE_CONFIG and update the dict at ``section_path``."""
    data = yaml.safe_load(yaml.safe_dump(BASE_CONFIG))
    section = data
    for key in section_path:
        section = section[key]
    section.update(values)
    return data


def test_shipped_defaults():
    config = Configuration()

    llm_config = config.get_llm_config()
    assert llm_config["model"] == "gemma3:4b"
    assert llm_config["stream"] is True
    assert "DevTacks" in llm_config["system_prompt"]

    provider = config.get_provider_config()
    assert provider.base_url == "http://localhost:11434"
    assert provider.read_timeout is None
    assert provider.api_key is None

    assert config.get_notices_config()["cancelled"] == "Request cancelled."
    assert config.get_streaming_config()["string_aware"] is True


def test_environment_overrides_endpoint(write_config, monkeypatch):
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
    monkeypatch.setenv("OLLAMA_MODEL", "llama3.2")
    monkeypatch.setenv("OLLAMA_API_KEY", "secret")

    provider = write_config(BASE_CONFIG).get_provider_config()

    assert provider.base_url == "http://gpu-box:11434"
    assert provider.model == "llama3.2"
    assert provider.api_key == "secret"


def test_missing_base_url_is_rejected(write_config):
    data = with_overrides(["llm"])
    del data["llm"]["base_url"]
    config = write_config(data)

    with pytest.raises(ValueError, match="llm.base_url must be explicitly configured"):
        config.get_llm_config()


def test_stream_must_be_boolean(write_config):
    config = write_config(with_overrides(["llm"], stream="yes"))
    with pytest.raises(ValueError, match="llm.stream"):
        config.get_llm_config()


def test_negative_timeout_is_rejected(write_config):
    config = write_config(with_overrides(["llm", "http_client"], write_timeout=-1))
    with pytest.raises(ValueError, match="write_timeout must be >= 0"):
        config.get_http_client_config()


def test_only_read_timeout_may_be_null(write_config):
    config = write_config(with_overrides(["llm", "http_client"], connect_timeout=None))
    with pytest.raises(ValueError, match="connect_timeout must be a number"):
        config.get_http_client_config()


def test_missing_timeout_is_rejected(write_config):
    data = with_overrides(["llm", "http_client"])
    del data["llm"]["http_client"]["pool_timeout"]
    config = write_config(data)

    with pytest.raises(ValueError, match="pool_timeout must be explicitly configured"):
        config.get_http_client_config()


def test_backend_notice_needs_placeholder(write_config):
    config = write_config(
        with_overrides(["chat", "service", "notices"], backend_error="API Error")
    )
    with pytest.raises(ValueError, match=r"\{message\}"):
        config.get_notices_config()


def test_missing_notice_is_rejected(write_config):
    data = with_overrides(["chat", "service", "notices"])
    del data["chat"]["service"]["notices"]["cancelled"]
    config = write_config(data)

    with pytest.raises(ValueError, match="notices.cancelled"):
        config.get_notices_config()


def test_max_buffer_chars_must_be_positive(write_config):
    config = write_config(
        with_overrides(["chat", "service", "streaming"], max_buffer_chars=0)
    )
    with pytest.raises(ValueError, match="max_buffer_chars"):
        config.get_streaming_config()


def test_streaming_defaults_when_section_absent(write_config):
    data = with_overrides(["chat", "service"])
    del data["chat"]["service"]["streaming"]
    streaming = write_config(data).get_streaming_config()

    assert streaming == {"string_aware": True, "max_buffer_chars": 1024 * 1024}


def test_non_dict_yaml_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError, match="Config file must be YAML dict"):
        Configuration(str(path))


def test_session_from_configuration(write_config):
    config = write_config(
        with_overrides(["chat", "service"], include_history=False)
    )
    session = ChatSession.from_configuration(config, transport=object())

    assert session.config.model == "gemma3:4b"
    assert session.config.system_prompt == "Be brief."
    assert session.config.include_history is False
    assert session.config.max_buffer_chars == 4096
    assert session.notices.network_error == "Network error: server unreachable."
    assert session.notices.backend_detail("boom") == "Ollama API Error: boom"
