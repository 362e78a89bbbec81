"""
Configuration loading for sharded cluster orchestration.

Values are resolved in order:
- default.yaml shipped inside the package
- An optional YAML file passed by the caller
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from shardedcluster.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "default.yaml"

# Environment variable -> (dot key, parser)
ENV_OVERRIDES: Dict[str, tuple] = {
    "SHARDED_CLUSTER_SHARDS": ("cluster.shards", int),
    "SHARDED_CLUSTER_REPLICAS": ("cluster.replicas", int),
    "SHARDED_CLUSTER_ROUTERS": ("cluster.routers", int),
    "SHARDED_CLUSTER_POLL_INTERVAL_MS": ("membership.poll_interval_ms", int),
    "SHARDED_CLUSTER_TIMEOUT_MS": ("membership.timeout_ms", int),
    "LOG_LEVEL": ("logging.level", str),
}


class Config:
    """Layered configuration with dot-notation access."""
    
    def __init__(
        self,
        config_file: Optional[str] = None,
        defaults_file: Optional[Path] = DEFAULT_CONFIG_PATH,
    ):
        """
        Initialize configuration.
        
        Args:
            config_file: YAML file merged over the defaults
            defaults_file: Defaults YAML file (skipped if missing or None)
        """
        self._config: Dict[str, Any] = {}
        
        if defaults_file is not None and Path(defaults_file).exists():
            self.load_file(str(defaults_file))
        
        if config_file:
            self.load_file(config_file)
        
        self._apply_env_overrides()
    
    def load_file(self, config_file: str) -> None:
        """
        Merge a YAML file into the current configuration.
        
        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            self.merge(yaml.safe_load(f) or {})
    
    def merge(self, overrides: Dict[str, Any]) -> None:
        """
        Deep merge a mapping into the current configuration.
        
        Args:
            overrides: Nested mapping whose leaves win over existing values
        """
        self._config = _deep_merge(self._config, overrides)
    
    def _apply_env_overrides(self) -> None:
        for env_var, (key, parse) in ENV_OVERRIDES.items():
            if (raw := os.getenv(env_var)) is not None:
                self.set(key, _parse(env_var, raw, parse))
    
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.
        
        Args:
            key: Dot-separated key (e.g., "membership.timeout_ms")
            default: Value returned when the key is missing
        
        Returns:
            Configuration value
        """
        value: Any = self._config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value
    
    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.
        
        Args:
            key: Dot-separated key
            value: Value to set
        """
        *parents, leaf = key.split(".")
        node = self._config
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    
    def to_dict(self) -> Dict[str, Any]:
        """Get a copy of the entire configuration."""
        return _deep_merge({}, self._config)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        elif isinstance(value, dict):
            result[key] = _deep_merge({}, value)
        else:
            result[key] = value
    return result


def _parse(env_var: str, raw: str, parse: Callable[[str], Any]) -> Any:
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {env_var}: {raw!r}") from e


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get the process-wide configuration, loading it on first use.
    
    Args:
        config_file: Optional YAML file applied on first load
    
    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Drop the process-wide configuration (mainly for testing)."""
    global _config
    _config = None
