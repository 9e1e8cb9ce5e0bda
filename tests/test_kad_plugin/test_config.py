import pytest
from pydantic import ValidationError

import sys, os
target_path = os.path.abspath(os.path.join(os.path.dirname(os.path.abspath(__file__)), "../.."))
if target_path not in sys.path:
    sys.path.insert(0, target_path)

from spartacus.crypto_utils import create_private_key, to_hdkey_from_seed
from spartacus.kad_plugin import SpartacusConfig


def test_defaults():
    config = SpartacusConfig()
    assert config.resolved_index == 0
    assert config.verify_derivation is True
    assert not config.is_flat
    assert config.root_key().is_private


def test_precedence_extended_key_over_raw_key():
    root = to_hdkey_from_seed()
    config = SpartacusConfig(
        private_extended_key=root.private_extended_key,
        private_key=create_private_key().hex(),
        seed="11" * 32,
    )
    assert not config.is_flat
    assert config.resolved_index == 0
    assert config.root_key().private_key == root.private_key


def test_precedence_raw_key_over_seed():
    priv = create_private_key()
    config = SpartacusConfig(private_key=priv.hex(), seed="11" * 32)
    assert config.is_flat
    assert config.resolved_index == -1
    assert config.root_key().private_key == priv


def test_explicit_index_on_flat_key():
    config = SpartacusConfig(private_key=create_private_key().hex(), derivation_index=2)
    assert config.resolved_index == 2


@pytest.mark.parametrize("kwargs", [
    {"private_key": "zz"},
    {"seed": "not hex"},
    {"derivation_index": -2},
    {"derivation_index": 2**32},
    {"derivation_path": "0/1"},
    {"unknown": 1},
])
def test_invalid_config(kwargs):
    with pytest.raises(ValidationError):
        SpartacusConfig(**kwargs)


def test_config_is_frozen():
    config = SpartacusConfig()
    with pytest.raises(ValidationError):
        config.derivation_index = 3


def test_from_env():
    root = to_hdkey_from_seed()
    config = SpartacusConfig.from_env(environ={
        "SPARTACUS_XPRV": root.private_extended_key,
        "SPARTACUS_DERIVATION_INDEX": "7",
        "SPARTACUS_DERIVATION_PATH": "m/0'",
        "SPARTACUS_VERIFY_DERIVATION": "false",
        "OTHER": "ignored",
    })
    assert config.private_extended_key == root.private_extended_key
    assert config.derivation_index == 7
    assert config.derivation_path == "m/0'"
    assert config.verify_derivation is False


def test_from_env_prefix_and_empty_values():
    config = SpartacusConfig.from_env("PEER_", environ={
        "PEER_PRIVATE_KEY": "",
        "PEER_SEED": "22" * 32,
    })
    assert config.private_key is None
    assert config.seed == "22" * 32


@pytest.mark.parametrize("environ", [
    {"SPARTACUS_DERIVATION_INDEX": "three"},
    {"SPARTACUS_VERIFY_DERIVATION": "maybe"},
])
def test_from_env_rejects_bad_values(environ):
    with pytest.raises(ValueError):
        SpartacusConfig.from_env(environ=environ)


def test_from_env_reads_dotenv(tmp_path, monkeypatch):
    # registered with monkeypatch so the value load_dotenv writes is undone
    monkeypatch.setenv("SPARTACUS_DERIVATION_INDEX", "1")
    env_file = tmp_path / ".env"
    env_file.write_text("SPARTACUS_DERIVATION_INDEX=9\n")
    config = SpartacusConfig.from_env(
        auto_dotenv=True,
        dotenv_path=str(env_file),
        dotenv_override=True,
    )
    assert config.derivation_index == 9
