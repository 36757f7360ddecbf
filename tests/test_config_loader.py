from pathlib import Path

import pytest

from tapvault.config import ConfigurationError, RPCConfig, TaprootConfig, load_config


def test_load_config_prefers_environment_over_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
        taproot:
          network: mainnet
          lock_delta_blocks: 144
          threshold: 3
        rpc:
          user: file_user
          password: file_pass
          host: filehost
          port: 1111
        """
    )

    env_map = {
        "TAPVAULT_NETWORK": "regtest",
        "TAPVAULT_RPC_USER": "env_user",
        "TAPVAULT_RPC_ENDPOINT": "https://envhost:3333",
    }

    config = load_config(config_path=config_path, env=env_map)

    assert isinstance(config, TaprootConfig)
    assert isinstance(config.rpc, RPCConfig)
    assert config.network == "regtest"
    assert config.lock_delta_blocks == 144
    assert config.threshold == 3
    assert config.rpc.user == "env_user"
    assert config.rpc.password == "file_pass"
    assert config.rpc.host == "envhost"
    assert config.rpc.port == 3333
    assert config.rpc.use_https is True


def test_overrides_win_and_legacy_env_names_are_read(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("taproot:\n  lock_delta_blocks: 10\n")

    config = load_config(
        config_path=config_path,
        env={"RPC_USER": "alice", "RPC_PASS": "secret", "RPC_PORT": "18332"},
        overrides={"lock_delta_blocks": 20, "network": None},
    )

    assert config.lock_delta_blocks == 20
    assert config.network == "testnet"
    assert config.rpc.user == "alice"
    assert config.rpc.password == "secret"
    assert config.rpc.port == 18332
    assert config.rpc.base_url == "http://127.0.0.1:18332"


def test_defaults_without_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tapvault.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")

    config = load_config(env={})

    assert config == TaprootConfig()
    assert config.rpc.port == 18443


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(config_path=tmp_path / "missing.yaml", env={})


@pytest.mark.parametrize(
    "env_map",
    [
        {"TAPVAULT_THRESHOLD": "4"},
        {"TAPVAULT_LOCK_DELTA": "soon"},
        {"TAPVAULT_NETWORK": "dogecoin"},
        {"TAPVAULT_RPC_PORT": "http"},
    ],
)
def test_invalid_values_raise(tmp_path: Path, env_map: dict) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("{}\n")
    with pytest.raises(ConfigurationError):
        load_config(config_path=config_path, env=env_map)
