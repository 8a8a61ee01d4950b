"""
Centralized Configuration System
Environment-aware settings for the queue, blockchain, ledger and notification layers.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Dict, Literal, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow"
    )
    """
    Production-grade configuration management.
    Loads from environment variables with sensible defaults.
    """

    # ============================================
    # NETWORKS
    # ============================================
    mainnet_rpc_url: str = "https://mainnet.azore.technology"
    mainnet_chain_id: int = 8800
    testnet_rpc_url: str = "https://testnet.azore.technology"
    testnet_chain_id: int = 88001
    default_network: Literal["mainnet", "testnet"] = "testnet"
    rpc_request_timeout_seconds: float = 30.0
    receipt_timeout_seconds: float = 120.0

    # ============================================
    # GAS
    # ============================================
    gas_limit_multiplier: float = 1.2  # Buffer over eth_estimateGas
    default_gas_limit: int = 300_000    # Used when estimation fails
    priority_fee_gwei: float = 2.0
    decimals_cache_ttl_seconds: float = 300.0

    # ============================================
    # SIGNERS & GAS PAYERS
    # ============================================
    admin_wallet_address: Optional[str] = None
    admin_private_key: Optional[str] = None
    fallback_gas_payer: str = "0x5528C065931f523CA9F3a6e49a911896fb1D2e6f"
    # JSON maps, e.g. SIGNER_PRIVATE_KEYS='{"0xabc...": "0x<key>"}'
    signer_private_keys: Dict[str, str] = {}
    # Contract address -> admin/gas payer address
    contract_admins: Dict[str, str] = {}

    # ============================================
    # MESSAGE QUEUE
    # ============================================
    queue_max_retries: int = 3
    queue_retry_base_delay_seconds: float = 5.0
    queue_prefetch: int = 5
    job_retention_seconds: int = 3600
    enable_queue_workers: bool = True

    # ============================================
    # LEDGER (MongoDB)
    # ============================================
    ledger_backend: Literal["mongo", "memory"] = "mongo"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "tokenops"
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 5
    mongodb_server_selection_timeout_ms: int = 5000

    # ============================================
    # AUTHENTICATION
    # ============================================
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # ============================================
    # NOTIFICATIONS
    # ============================================
    webhook_secret: Optional[str] = None
    webhook_timeout_seconds: float = 10.0
    mailersend_api_key: Optional[str] = None
    mailersend_api_url: str = "https://api.mailersend.com/v1/email"
    email_from: str = "no-reply@tokenops.local"
    support_email: str = "support@tokenops.local"

    # ============================================
    # INTEGRATIONS
    # ============================================
    explorer_api_url: str = "https://explorer.azore.technology"
    explorer_timeout_seconds: float = 10.0
    pix_provider: Literal["mock"] = "mock"

    # ============================================
    # LOGGING
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "staging", "production"] = "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()


# Convenience accessor for common use
settings = get_settings()
