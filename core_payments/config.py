"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class PaymentsConfig(BaseSettings):
    """Payments core configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "core_payments.db"
    database_timeout_seconds: float = 5.0  # SQLite busy timeout

    # Artifact configuration
    artifact_dir: str = "receipts"
    retention_days: int = 30
    janitor_enabled: bool = True
    janitor_hour: int = 2  # Daily sweep at 02:00 UTC
    janitor_minute: int = 0

    # Transfer configuration
    default_currency: str = "ZAR"
    lock_timeout_seconds: float = 5.0
    transfer_max_attempts: int = 5  # Retries on id collision / version conflict
    transaction_id_prefix: str = "YB"

    # Notification configuration
    notification_timeout_seconds: float = 5.0
    notification_workers: int = 4
    notification_webhook_url: Optional[str] = None

    # Proof of payment configuration
    max_bulk_batch: int = 10
    bank_name: str = "YourBank"
    support_contact: str = "support@yourbank.com | +27 11 123 4567"
    verification_base_url: str = "https://yourbank.com/verify"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    class Config:
        env_prefix = "PAYMENTS_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PaymentsConfig()


def get_config() -> PaymentsConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PaymentsConfig:
    """Reload configuration from environment"""
    global config
    config = PaymentsConfig()
    return config
