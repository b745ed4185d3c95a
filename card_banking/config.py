"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings


class CardBankingConfig(BaseSettings):
    """Card banking system configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    sqlite_path: str = "card_banking.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Card number encryption (CARDBANK_ENCRYPTION_MASTER_KEY env var)
    encryption_master_key: str = ""

    # Transfer engine
    transfer_max_retries: int = 5  # Optimistic concurrency attempts per transfer

    class Config:
        env_prefix = "CARDBANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CardBankingConfig()


def get_config() -> CardBankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CardBankingConfig:
    """Reload configuration from environment"""
    global config
    config = CardBankingConfig()
    return config
