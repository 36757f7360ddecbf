"""Shared configuration loader for tapvault."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml

from .address import NETWORK_HRPS


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".tapvault.yaml"
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class RPCConfig:
    """Connection details for the node used to read the chain height."""

    user: str = "user"
    password: str = "pass"
    host: str = "127.0.0.1"
    port: int = 18443
    use_https: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}"


@dataclass
class TaprootConfig:
    network: str = "testnet"
    lock_delta_blocks: int = 2000
    threshold: int = 2
    rpc: RPCConfig = field(default_factory=RPCConfig)


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _section(file_config: Mapping[str, Any], name: str, path: Path) -> Mapping[str, Any]:
    section = file_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_int(raw: Any, *, name: str, source: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {name} in {source}: {raw}") from exc


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _parse_endpoint(raw: str | None) -> tuple[str | None, int | None, bool | None]:
    if not raw:
        return None, None, None
    parsed = urlparse(raw)
    if not parsed.scheme and not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC endpoint URL: {raw}")
    host = parsed.hostname or None
    port = parsed.port
    use_https = parsed.scheme.lower() == "https" if parsed.scheme else None
    return host, port, use_https


def _load_rpc(
    section: Mapping[str, Any], env_map: Mapping[str, str], overrides: Mapping[str, Any]
) -> RPCConfig:
    env_user = env_map.get("TAPVAULT_RPC_USER") or env_map.get("RPC_USER")
    env_password = env_map.get("TAPVAULT_RPC_PASSWORD") or env_map.get("RPC_PASS")
    env_host = env_map.get("TAPVAULT_RPC_HOST") or env_map.get("RPC_HOST")
    env_port = _coerce_int(
        env_map.get("TAPVAULT_RPC_PORT") or env_map.get("RPC_PORT"),
        name="port",
        source="environment",
    )
    env_use_https = _coerce_bool(env_map.get("TAPVAULT_RPC_USE_HTTPS"))
    endpoint_host, endpoint_port, endpoint_use_https = _parse_endpoint(
        _first_value(
            overrides.get("endpoint"),
            env_map.get("TAPVAULT_RPC_ENDPOINT"),
            section.get("endpoint"),
        )
    )

    return RPCConfig(
        user=_first_value(overrides.get("user"), env_user, section.get("user"), default="user"),
        password=_first_value(
            overrides.get("password"), env_password, section.get("password"), default="pass"
        ),
        host=_first_value(
            overrides.get("host"), endpoint_host, env_host, section.get("host"), default="127.0.0.1"
        ),
        port=_first_value(
            _coerce_int(overrides.get("port"), name="port", source="overrides"),
            endpoint_port,
            env_port,
            _coerce_int(section.get("port"), name="port", source="rpc.port"),
            default=18443,
        ),
        use_https=bool(
            _first_value(
                _coerce_bool(overrides.get("use_https")),
                endpoint_use_https,
                env_use_https,
                _coerce_bool(section.get("use_https")),
                default=False,
            )
        ),
    )


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> TaprootConfig:
    """Load configuration from overrides, environment variables and YAML.

    Explicit *overrides* win over the environment, which wins over the file.
    ``overrides`` may carry an ``rpc`` mapping for connection settings.
    """

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    taproot_section = _section(file_config, "taproot", path)
    rpc_section = _section(file_config, "rpc", path)
    override_map = dict(overrides or {})

    network = _first_value(
        override_map.get("network"),
        env_map.get("TAPVAULT_NETWORK"),
        taproot_section.get("network"),
        default="testnet",
    )
    if network not in NETWORK_HRPS:
        raise ConfigurationError(f"Unknown network: {network}")

    lock_delta = _first_value(
        _coerce_int(override_map.get("lock_delta_blocks"), name="lock delta", source="overrides"),
        _coerce_int(env_map.get("TAPVAULT_LOCK_DELTA"), name="lock delta", source="environment"),
        _coerce_int(taproot_section.get("lock_delta_blocks"), name="lock delta", source=str(path)),
        default=2000,
    )
    if lock_delta < 0:
        raise ConfigurationError(f"Lock delta must be non-negative, got {lock_delta}")

    threshold = _first_value(
        _coerce_int(override_map.get("threshold"), name="threshold", source="overrides"),
        _coerce_int(env_map.get("TAPVAULT_THRESHOLD"), name="threshold", source="environment"),
        _coerce_int(taproot_section.get("threshold"), name="threshold", source=str(path)),
        default=2,
    )
    if not 1 <= threshold <= 3:
        raise ConfigurationError(f"Threshold must be between 1 and 3, got {threshold}")

    return TaprootConfig(
        network=network,
        lock_delta_blocks=lock_delta,
        threshold=threshold,
        rpc=_load_rpc(rpc_section, env_map, dict(override_map.get("rpc") or {})),
    )
