"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class BankOpsConfig(BaseSettings):
    """Banking operations core configuration"""

    # Database configuration
    database_url: str = "sqlite:///bank_ops.db"  # memory:// for an in-process store
    database_timeout: float = 5.0  # seconds SQLite waits on a locked database
    lock_timeout_seconds: float = 10.0  # max wait to enter a unit of work

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    reserve_funds_on_hold: bool = False  # hold funds while a transfer awaits approval
    password_min_length: int = 6
    account_number_attempts: int = 20

    # Feature flags
    enable_audit_logging: bool = True  # mirror audit entries into the application log

    class Config:
        env_prefix = "BANK_OPS_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankOpsConfig()


def get_config() -> BankOpsConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankOpsConfig:
    """Reload configuration from environment"""
    global config
    config = BankOpsConfig()
    return config
