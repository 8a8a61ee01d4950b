"""
Tests for centralized configuration system.
Verifies environment variable loading and default values.
"""
from tokenops.config import Settings, get_settings


class TestConfigurationSystem:
    """Test suite for configuration management."""

    def test_default_values(self):
        """Verify all configuration fields have sensible defaults."""
        settings = Settings(_env_file=None)

        # Networks
        assert settings.default_network == "testnet"
        assert settings.mainnet_chain_id == 8800
        assert settings.testnet_chain_id == 88001

        # Queue
        assert settings.queue_max_retries == 3
        assert settings.queue_retry_base_delay_seconds == 5.0
        assert settings.queue_prefetch == 5
        assert settings.enable_queue_workers is True

        # Gas
        assert settings.gas_limit_multiplier == 1.2
        assert settings.default_gas_limit == 300_000

        # Ledger
        assert settings.ledger_backend == "mongo"
        assert settings.mongodb_database == "tokenops"

        # Logging
        assert settings.log_level == "INFO"
        assert settings.enable_structured_logging is False
        assert settings.webhook_secret is None

    def test_environment_variable_override(self, monkeypatch):
        """Verify environment variables override defaults."""
        get_settings.cache_clear()

        monkeypatch.setenv("DEFAULT_NETWORK", "mainnet")
        monkeypatch.setenv("QUEUE_MAX_RETRIES", "5")
        monkeypatch.setenv("LEDGER_BACKEND", "memory")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ENVIRONMENT", "production")

        try:
            settings = get_settings()

            assert settings.default_network == "mainnet"
            assert settings.queue_max_retries == 5
            assert settings.ledger_backend == "memory"
            assert settings.log_level == "DEBUG"
            assert settings.environment == "production"
        finally:
            get_settings.cache_clear()

    def test_json_maps_from_environment(self, monkeypatch):
        """Signer keys and contract admins are JSON objects in the environment."""
        monkeypatch.setenv("SIGNER_PRIVATE_KEYS", '{"0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266": "0x01"}')
        monkeypatch.setenv("CONTRACT_ADMINS", '{"0x5fbdb2315678afecb367f032d93f642f64180aa3": "0xabc"}')

        settings = Settings(_env_file=None)

        assert settings.signer_private_keys == {"0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266": "0x01"}
        assert settings.contract_admins["0x5fbdb2315678afecb367f032d93f642f64180aa3"] == "0xabc"

    def test_settings_singleton(self):
        """get_settings() returns the cached instance."""
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()
