"""Tests for protocol_client.config_loader and ClientConfig validation.

Tests cover:
- Single-client and named multi-client YAML files
- ${ENV_VAR} substitution, including missing variables
- Malformed files and invalid structures
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from protocol_client.config_loader import ConfigFileError, load_client_config
from protocol_client.errors import ConfigurationError
from protocol_client.models import ClientConfig


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "client.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadClientConfig:
    def test_single_client(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "base_url: https://api.test\ntimeout: 5\nfollow_redirects: true\n")
        config = load_client_config(path)
        assert config.base_url == "https://api.test"
        assert config.timeout == 5.0
        assert config.follow_redirects is True
        assert config.charset == "utf-8"

    def test_env_var_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_TOKEN", "s3cret")
        monkeypatch.setenv("API_HOST", "api.test")
        path = write_config(
            tmp_path,
            "base_url: https://${API_HOST}/v1\nheaders:\n  Authorization: Bearer ${API_TOKEN}\n",
        )
        config = load_client_config(str(path))
        assert config.base_url == "https://api.test/v1"
        assert config.headers == {"Authorization": "Bearer s3cret"}

    def test_missing_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("UNSET_TOKEN", raising=False)
        path = write_config(tmp_path, "headers:\n  Authorization: ${UNSET_TOKEN}\n")
        with pytest.raises(ConfigFileError, match="UNSET_TOKEN"):
            load_client_config(path)

    def test_named_client(self, tmp_path: Path) -> None:
        path = write_config(
            tmp_path,
            "clients:\n"
            "  widgets:\n    base_url: https://widgets.test\n"
            "  billing:\n    base_url: https://billing.test\n    verify_ssl: false\n",
        )
        billing = load_client_config(path, "billing")
        assert billing.base_url == "https://billing.test"
        assert billing.verify_ssl is False
        assert load_client_config(path, "widgets").base_url == "https://widgets.test"

    def test_single_entry_under_clients_needs_no_name(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "clients:\n  only:\n    base_url: https://only.test\n")
        assert load_client_config(path).base_url == "https://only.test"

    def test_name_required_with_several_clients(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "clients:\n  a: {}\n  b: {}\n")
        with pytest.raises(ConfigFileError, match="a, b"):
            load_client_config(path)

    def test_unknown_name(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "clients:\n  a: {}\n")
        with pytest.raises(ConfigFileError, match="'zzz' not found"):
            load_client_config(path, "zzz")

    def test_name_without_clients_section(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "base_url: https://api.test\n")
        with pytest.raises(ConfigFileError, match="no 'clients' section"):
            load_client_config(path, "a")


class TestLoadErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigFileError, match="not found"):
            load_client_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "base_url: [unclosed\n")
        with pytest.raises(ConfigFileError, match="Invalid YAML"):
            load_client_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "- a\n- b\n")
        with pytest.raises(ConfigFileError, match="mapping"):
            load_client_config(path)

    def test_unknown_field(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "base_url: https://api.test\nretries: 3\n")
        with pytest.raises(ConfigFileError, match="Invalid config structure"):
            load_client_config(path)

    def test_is_a_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            load_client_config(tmp_path / "nope.yaml")


class TestClientConfigValidation:
    def test_unknown_charset(self) -> None:
        with pytest.raises(ValidationError, match="unknown charset"):
            ClientConfig(charset="no-such-charset")

    def test_cert_requires_key(self) -> None:
        with pytest.raises(ValidationError, match="cert and key"):
            ClientConfig(cert="/path/to/client.crt")

    def test_key_password_alone_is_allowed(self) -> None:
        assert ClientConfig(key_password="secret").cert is None
