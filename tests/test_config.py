"""Tests for configuration loading."""

import logging
from pathlib import Path

import pytest

from cont_srv.core.config import load_config, read_config_file
from cont_srv.core.errors import ConfigError
from cont_srv.models import ServerConfig


def write_toml(tmp_path, text: str) -> Path:
    path = tmp_path / "cont-srv.toml"
    path.write_text(text)
    return path


def test_defaults():
    config = load_config()

    assert config == ServerConfig()
    assert config.address == "0.0.0.0"
    assert config.port == 1131
    assert config.root_dir == Path(".")
    assert config.workers == 1
    assert config.book_cache_size == 10
    assert not config.tls_enabled
    assert not config.auth_enabled


def test_cli_values_are_used():
    config = load_config(address="127.0.0.1", port=8080, root_dir=Path("/srv/books"))

    assert config.address == "127.0.0.1"
    assert config.port == 8080
    assert config.root_dir == Path("/srv/books")


def test_unset_cli_values_keep_defaults():
    assert load_config(address=None, port=None).port == 1131


def test_file_overrides_cli(tmp_path):
    path = write_toml(
        tmp_path,
        'port = 9000\nroot_dir = "library"\nworkers = 4\nbook_cache_size = 3\n',
    )
    config = load_config(path, address="127.0.0.1", port=8080)

    assert config.address == "127.0.0.1"
    assert config.port == 9000
    assert config.root_dir == Path("library")
    assert config.workers == 4
    assert config.book_cache_size == 3


def test_tls_and_auth_settings(tmp_path):
    path = write_toml(
        tmp_path,
        'cert_path = "cert.pem"\nkey_path = "key.pem"\n'
        'user_name = "reader"\npassword_hash = "$2b$12$abc"\n',
    )
    config = load_config(path)

    assert config.tls_enabled
    assert config.auth_enabled
    assert config.cert_path == Path("cert.pem")


def test_unknown_keys_are_ignored(tmp_path, caplog):
    path = write_toml(tmp_path, 'port = 9000\ncolour = "blue"\n')

    with caplog.at_level(logging.WARNING):
        values = read_config_file(path)

    assert values == {"port": 9000}
    assert "colour" in caplog.text


@pytest.mark.parametrize(
    "text, message",
    [
        ('cert_path = "cert.pem"\n', "cert file and key file"),
        ('key_path = "key.pem"\n', "cert file and key file"),
        ('user_name = "reader"\n', "user name and password hash"),
        ('password_hash = "$2b$12$abc"\n', "user name and password hash"),
        ("port = 0\n", "port"),
        ("port = 70000\n", "port"),
        ("workers = 0\n", "workers"),
        ('port = "eighty"\n', "port"),
    ],
)
def test_invalid_values(tmp_path, text, message):
    with pytest.raises(ConfigError, match=message):
        load_config(write_toml(tmp_path, text))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.toml")


def test_invalid_toml(tmp_path):
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(write_toml(tmp_path, "port = = 1\n"))
