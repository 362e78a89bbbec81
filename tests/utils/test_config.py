"""Tests for configuration loading."""

import pytest

from shardedcluster.errors import ConfigurationError
from shardedcluster.utils.config import DEFAULT_CONFIG_PATH, Config, get_config, reset_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "SHARDED_CLUSTER_SHARDS",
        "SHARDED_CLUSTER_REPLICAS",
        "SHARDED_CLUSTER_ROUTERS",
        "SHARDED_CLUSTER_POLL_INTERVAL_MS",
        "SHARDED_CLUSTER_TIMEOUT_MS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


class TestConfig:
    """Test Config."""
    
    def test_defaults_file(self):
        """Test shipped defaults are loaded."""
        assert DEFAULT_CONFIG_PATH.exists()
        
        config = Config()
        
        assert config.get("cluster.shards") == 1
        assert config.get("membership.poll_interval_ms") == 1000
        assert config.get("membership.timeout_ms") == 30000
    
    def test_config_file_override(self, tmp_path):
        """Test user file deep-merges over defaults."""
        config_file = tmp_path / "cluster.yaml"
        config_file.write_text("cluster:\n  shards: 4\nmembership:\n  timeout_ms: 500\n")
        
        config = Config(str(config_file))
        
        assert config.get("cluster.shards") == 4
        assert config.get("cluster.routers") == 1
        assert config.get("membership.timeout_ms") == 500
        assert config.get("membership.poll_interval_ms") == 1000
    
    def test_empty_file(self, tmp_path):
        """Test an empty YAML file changes nothing."""
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        
        config = Config(str(config_file), defaults_file=None)
        
        assert config.to_dict() == {}
    
    def test_env_overrides(self, monkeypatch):
        """Test environment variables win over files."""
        monkeypatch.setenv("SHARDED_CLUSTER_SHARDS", "3")
        monkeypatch.setenv("SHARDED_CLUSTER_TIMEOUT_MS", "10000")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        
        config = Config()
        
        assert config.get("cluster.shards") == 3
        assert config.get("membership.timeout_ms") == 10000
        assert config.get("logging.level") == "DEBUG"
    
    def test_invalid_env_value(self, monkeypatch):
        """Test non-numeric counts are rejected."""
        monkeypatch.setenv("SHARDED_CLUSTER_ROUTERS", "many")
        
        with pytest.raises(ConfigurationError):
            Config()
    
    def test_get_set(self):
        """Test dot-notation access."""
        config = Config(defaults_file=None)
        
        config.set("admin.server_selection_timeout_ms", 100)
        
        assert config.get("admin.server_selection_timeout_ms") == 100
        assert config.get("admin.missing", "fallback") == "fallback"
        assert config.get("admin.server_selection_timeout_ms.deeper") is None
    
    def test_to_dict_is_copy(self):
        """Test to_dict does not expose internal state."""
        config = Config(defaults_file=None)
        config.set("cluster.shards", 2)
        
        snapshot = config.to_dict()
        snapshot["cluster"]["shards"] = 99
        
        assert config.get("cluster.shards") == 2
    
    def test_global_config(self):
        """Test get_config caches until reset."""
        first = get_config()
        
        assert get_config() is first
        
        reset_config()
        assert get_config() is not first
