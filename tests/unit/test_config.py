"""
Unit tests for drsap.config.
"""

import pytest

from drsap.config import DEFAULT_CONFIG, Config
from drsap.errors import ConfigError, ErrorCode


class TestDefaults:
    """Test configuration without a file."""

    def test_defaults_when_file_missing(self, temp_dir):
        config = Config(temp_dir / "missing.toml")

        assert config.get("crypto", "rsa_key_size") == 1024
        assert config.get("crypto", "symmetric_key_bytes") == 16
        assert config.get("protocol", "encrypt_prefix") == "DRSAP:MSG:"
        assert config.get("protocol", "handshake_prefix") == "DRSAP:HANDSHAKE"
        assert config.get("protocol", "acknowledgment_prefix") == "DRSAP:ACK"
        assert config.get("logging", "level") == "INFO"

    def test_get_default_for_unknown(self, temp_dir):
        config = Config(temp_dir / "missing.toml")
        assert config.get("nope", "key", "fallback") == "fallback"
        assert config.get("crypto", "nope") is None

    def test_defaults_not_shared(self, temp_dir):
        config = Config(temp_dir / "missing.toml")
        config.set("crypto", "rsa_key_size", 4096)
        assert DEFAULT_CONFIG["crypto"]["rsa_key_size"] == 1024

    def test_data_dir_expanded(self, temp_dir):
        config = Config(temp_dir / "missing.toml")
        assert "~" not in str(config.data_dir)


class TestFileLoading:
    """Test TOML merging."""

    def test_merge(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text('[crypto]\nrsa_key_size = 2048\n\n[protocol]\nencrypt_prefix = "M:"\n')

        config = Config(path)
        assert config.get("crypto", "rsa_key_size") == 2048
        assert config.get("crypto", "symmetric_key_bytes") == 16
        assert config.get("protocol", "encrypt_prefix") == "M:"
        assert config.get("protocol", "handshake_prefix") == "DRSAP:HANDSHAKE"

    def test_parse_error(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text("[crypto\nrsa_key_size = ")

        with pytest.raises(ConfigError) as exc_info:
            Config(path)
        assert exc_info.value.code is ErrorCode.E704_CONFIG_PARSE_ERROR


class TestEnvironment:
    """Test DRSAP_SECTION_KEY overrides."""

    def test_int_override(self, temp_dir, monkeypatch):
        monkeypatch.setenv("DRSAP_CRYPTO_RSA_KEY_SIZE", "2048")
        assert Config(temp_dir / "missing.toml").get("crypto", "rsa_key_size") == 2048

    def test_bool_override(self, temp_dir, monkeypatch):
        monkeypatch.setenv("DRSAP_LOGGING_CONSOLE_LOGGING", "false")
        assert Config(temp_dir / "missing.toml").get("logging", "console_logging") is False

    def test_string_override_beats_file(self, temp_dir, monkeypatch):
        path = temp_dir / "config.toml"
        path.write_text('[protocol]\nencrypt_prefix = "FILE:"\n')
        monkeypatch.setenv("DRSAP_PROTOCOL_ENCRYPT_PREFIX", "ENV:")
        assert Config(path).get("protocol", "encrypt_prefix") == "ENV:"

    def test_bad_int_keeps_value(self, temp_dir, monkeypatch):
        monkeypatch.setenv("DRSAP_CRYPTO_RSA_KEY_SIZE", "big")
        assert Config(temp_dir / "missing.toml").get("crypto", "rsa_key_size") == 1024


class TestSaving:
    """Test writing configuration back out."""

    def test_save_and_reload(self, temp_dir):
        path = temp_dir / "nested" / "config.toml"
        config = Config(path)
        config.set("crypto", "rsa_key_size", 2048)
        config.set("logging", "console_logging", False)
        config.save()

        reloaded = Config(path)
        assert reloaded.get("crypto", "rsa_key_size") == 2048
        assert reloaded.get("logging", "console_logging") is False
        assert reloaded.to_dict() == config.to_dict()

    def test_create_example(self, temp_dir):
        path = temp_dir / "example.toml"
        Config.create_example(path)

        text = path.read_text()
        assert text.startswith("# DRSAP Configuration File")
        assert Config(path).to_dict() == DEFAULT_CONFIG

    def test_to_dict_is_copy(self, temp_dir):
        config = Config(temp_dir / "missing.toml")
        data = config.to_dict()
        data["crypto"]["rsa_key_size"] = 1
        assert config.get("crypto", "rsa_key_size") == 1024
