"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables (or .env) with sensible defaults.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Input / Output Files
    # ============================================================
    accounts_file: str = Field("emails.txt", description="Account store (JSON array, JSON lines or YAML)")
    hosts_file: str = Field("hosts.json", description="Domain -> IMAP host rules")
    proxies_file: Optional[str] = Field("proxies.txt", description="Proxy pool, one proxy per line")
    invalid_accounts_file: str = Field("invalid.txt", description="Accounts that failed in a run (JSON lines)")

    # ============================================================
    # Fetch Behaviour
    # ============================================================
    imap_window_size: int = Field(5, ge=1, description="Most recent messages loaded per IMAP fetch")
    lazy_load: bool = Field(True, description="Defer IMAP body extraction until first access")
    multi_threaded: bool = Field(False, description="Fetch accounts in parallel, one session per fetch")
    max_workers: int = Field(4, ge=1, description="Worker threads in multi-threaded mode")

    # ============================================================
    # IMAP Configuration
    # ============================================================
    imap_port: int = Field(993, description="IMAP server port (implicit TLS)")
    imap_folder: str = Field("INBOX", description="Folder to read")
    imap_timeout: int = Field(30, description="IMAP connect/read timeout in seconds")

    # ============================================================
    # Microsoft Identity / Graph
    # ============================================================
    token_url: str = Field(
        "https://login.microsoftonline.com/common/oauth2/v2.0/token",
        description="OAuth2 token endpoint used for refresh-token exchange"
    )
    graph_base_url: str = Field("https://graph.microsoft.com/v1.0", description="Graph API base URL")
    graph_scope_marker: str = Field("graph", description="Scope substring that selects the Graph protocol")
    http_timeout: float = Field(30.0, description="HTTP connect/read timeout in seconds")

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
