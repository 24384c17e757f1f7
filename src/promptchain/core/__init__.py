"""Core functionality for prompt chains and image generation.

- **config**: Configuration management using Pydantic Settings
  (``PROMPTCHAIN_`` environment variables).
- **errors**: Error taxonomy; every error carries its HTTP status.
- **schema**: On-demand schema provisioning.
- **chain_store**: SQLite storage for chains, versions, artists and
  inspirations with the provision-and-retry-once policy.
- **models**: Structured shapes of stored modules and generation parameters.
- **request_compiler**: Prompt + parameters to provider payload.
- **response_decoder**: Provider zip archive to image bytes + seed.
- **provider_client**: Async HTTP client for the provider.
"""

from promptchain.core.config import PromptChainConfig, config

__all__ = [
    "PromptChainConfig",
    "config",
]
