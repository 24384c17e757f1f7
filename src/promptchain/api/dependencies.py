"""FastAPI dependencies shared by the route handlers.

Settings, the store and the provider client are all injected through these
functions so tests can replace them with ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from promptchain.api.auth import MASTER_KEY_HEADER, authorize
from promptchain.core.chain_store import ChainStore
from promptchain.core.config import PromptChainConfig, config
from promptchain.core.errors import AuthError
from promptchain.core.provider_client import ProviderClient

logger = logging.getLogger(__name__)


def get_settings() -> PromptChainConfig:
    """Return the active configuration (the global instance by default)."""
    return config


def get_store(settings: PromptChainConfig = Depends(get_settings)) -> ChainStore:
    """Build the chain store, failing fast on a bad storage binding.

    Raises:
        ConfigurationError: If the database is not configured correctly.
    """
    return ChainStore.from_config(settings)


def get_provider(
    request: Request,
    settings: PromptChainConfig = Depends(get_settings),
) -> ProviderClient:
    """Return the provider client created at startup.

    A client is created on first use when the application lifespan did not
    run (for example under a bare ``TestClient``).
    """
    provider = getattr(request.app.state, "provider", None)
    if provider is None:
        provider = ProviderClient.from_config(settings)
        request.app.state.provider = provider
    return provider


def enforce_master_key(
    request: Request,
    settings: PromptChainConfig = Depends(get_settings),
) -> None:
    """Reject guarded requests that lack a matching ``X-Master-Key`` header.

    Runs as an application-wide dependency, before any route dependency can
    touch the store or the provider.

    Raises:
        AuthError: If the route is guarded and the key is missing or wrong.
    """
    supplied = request.headers.get(MASTER_KEY_HEADER)
    if not authorize(request.method, request.url.path, supplied, settings.master_key):
        logger.warning(f"Rejected unauthorised {request.method} {request.url.path}")
        raise AuthError("Unauthorized")
