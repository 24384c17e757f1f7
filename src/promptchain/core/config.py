"""Configuration management for the Prompt Chain service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMPTCHAIN_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMPTCHAIN_* prefix)
2. .env file in the project root
3. Default values defined in PromptChainConfig

Example .env file:
    PROMPTCHAIN_DB_PATH=data/promptchain.db
    PROMPTCHAIN_MASTER_KEY=change-me
    PROMPTCHAIN_PROVIDER_API_KEY=pst-xxxxxxxx

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Route handlers reach it through
:func:`promptchain.api.dependencies.get_settings` so tests can substitute
their own instance.

Usage Example
-------------
    from promptchain.core.config import config

    print(config.db_path)
    print(config.provider_url)
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PromptChainConfig(BaseSettings):
    """Main configuration for the Prompt Chain service.

    Attributes
    ----------
    Storage:
        db_path : Path | None
            SQLite database file.  ``None`` means no store is configured and
            every store-backed route answers 503.

    Authentication:
        master_key : str | None
            Shared secret expected in the ``X-Master-Key`` header for
            mutating routes.  When unset, guarded routes always deny.

    Provider:
        provider_api_key : str | None
            Bearer token sent to the image provider when the caller does not
            supply its own ``Authorization`` header.
        provider_url : str
            Full URL of the provider's image generation endpoint.
        provider_model : str
            Model identifier placed in compiled payloads.
        provider_timeout : float | None
            Client-side timeout in seconds.  ``None`` leaves the request
            bounded only by the hosting server's own lifetime.

    Server:
        static_dir : Path | None
            Optional built frontend served at ``/``.
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Bind port for uvicorn (1024-65535).
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root logging level applied by the CLI entry point.

    Notes
    -----
    - The database's parent directory is created automatically.
    - To modify config, set environment variables and restart the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTCHAIN_",
        case_sensitive=False,
    )

    # Storage
    db_path: Path | None = Field(
        default=Path("data/promptchain.db"),
        description="SQLite database file (unset to disable store routes)",
    )

    # Authentication
    master_key: str | None = Field(
        default=None,
        description="Shared secret for mutating routes (X-Master-Key header)",
    )

    # Provider settings
    provider_api_key: str | None = Field(
        default=None,
        description="Bearer token for the image provider",
    )
    provider_url: str = Field(
        default="https://image.novelai.net/ai/generate-image",
        description="Image generation endpoint",
    )
    provider_model: str = Field(
        default="nai-diffusion-4-5-full",
        description="Model identifier sent in compiled payloads",
    )
    provider_timeout: float | None = Field(
        default=None,
        description="Client-side provider timeout in seconds (None = no timeout)",
        gt=0,
    )

    # Server settings
    static_dir: Path | None = Field(
        default=None,
        description="Built frontend directory served at / (optional)",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=8787,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root logging level",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the database directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.db_path is not None and not self.db_path.is_dir():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance, loaded from PROMPTCHAIN_* variables and .env.
config = PromptChainConfig()
