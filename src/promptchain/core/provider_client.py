"""HTTP client for the external image generation provider.

:class:`ProviderClient` posts compiled payloads to the provider and returns
the raw zip archive.  A non-success answer is raised as
:class:`ProviderError` carrying the provider's own status and body; nothing
is retried.

Usage
-----
::

    client = ProviderClient.from_config(config)
    result = await client.generate_image("1girl", "blurry", GenerationParams(seed=7))
    print(result.seed, len(result.image_bytes))
    await client.aclose()
"""

from __future__ import annotations

import logging

import httpx

from promptchain.core.config import PromptChainConfig
from promptchain.core.errors import ConfigurationError, ProviderError
from promptchain.core.models import GenerationParams
from promptchain.core.request_compiler import DEFAULT_MODEL, compile_request, sent_seed
from promptchain.core.response_decoder import DecodedImage, decode_response

logger = logging.getLogger(__name__)


class ProviderClient:
    """Async client for the provider's generate endpoint.

    Attributes:
        url: Generate endpoint URL.
        model: Model identifier used when compiling payloads.
        api_key: Default bearer token, used when a call supplies none.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            url: Generate endpoint URL.
            api_key: Default bearer token.
            model: Model identifier for compiled payloads.
            timeout: Request timeout in seconds, ``None`` for no limit.
            transport: Optional httpx transport (used by tests).
        """
        self.url = url
        self.model = model
        self.api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, cfg: PromptChainConfig) -> ProviderClient:
        return cls(
            cfg.provider_url,
            api_key=cfg.provider_api_key,
            model=cfg.provider_model,
            timeout=cfg.provider_timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(self, payload: dict, api_key: str | None = None) -> bytes:
        """Send a payload to the provider and return its archive bytes.

        Args:
            payload: Compiled (or caller-supplied raw) provider payload.
            api_key: Bearer token for this call; falls back to the
                configured key.

        Returns:
            The response body, a zip archive.

        Raises:
            ConfigurationError: If no API key is available.
            ProviderError: If the provider is unreachable or answers with a
                non-success status.
        """
        key = api_key or self.api_key
        if not key:
            raise ConfigurationError(
                "Provider API key not configured. Set PROMPTCHAIN_PROVIDER_API_KEY "
                "or send an Authorization header."
            )

        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {key}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Provider request failed: {e}")
            raise ProviderError(502, str(e)) from e

        if not response.is_success:
            logger.error(f"Provider answered {response.status_code}: {response.text[:200]}")
            raise ProviderError(response.status_code, response.text)

        return response.content

    async def generate_image(
        self,
        prompt: str,
        negative: str,
        params: GenerationParams,
        api_key: str | None = None,
    ) -> DecodedImage:
        """Compile, send and decode one generation request.

        Args:
            prompt: Positive prompt.
            negative: Negative prompt.
            params: Generation parameters.
            api_key: Optional per-call bearer token.

        Returns:
            The decoded image and its resolved seed.
        """
        payload = compile_request(prompt, negative, params, model=self.model)
        archive = await self.generate(payload, api_key=api_key)
        return decode_response(archive, sent_seed(payload))
