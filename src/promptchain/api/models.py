"""Pydantic request models for the Prompt Chain API.

These models define the JSON schema for every endpoint that takes a body.
FastAPI uses them for request validation and OpenAPI documentation.  All
bodies use camelCase keys (``basePrompt``, ``imageUrl``, ...) through aliases.

Models
------
CreateChainRequest
    Payload for ``POST /api/chains``.
UpdateChainRequest
    Partial payload for ``PUT /api/chains/{id}``.
CreateVersionRequest
    Payload for ``POST /api/chains/{id}/versions``.
ChainGenerateRequest
    Payload for ``POST /api/chains/{id}/generate``.
GenerateRequest
    Structured payload for ``POST /api/generate``.
ArtistRequest / InspirationRequest
    Upsert payloads for the reference record endpoints.
VerifyKeyRequest
    Payload for ``POST /api/verify-key``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from promptchain.core.models import GenerationParams, PromptModule


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateChainRequest(_RequestModel):
    """Request body for ``POST /api/chains``.

    Attributes:
        name: Display name of the new chain.
        description: Optional description.
    """

    name: str = Field(..., description="Chain display name.")
    description: str | None = Field(default="", description="Chain description.")


class UpdateChainRequest(_RequestModel):
    """Request body for ``PUT /api/chains/{id}``.

    Every field is optional.  Only fields present in the JSON body are applied,
    so sending ``{"previewImage": null}`` clears the preview while ``{}``
    changes nothing.
    """

    name: str | None = Field(default=None, description="New chain name.")
    description: str | None = Field(default=None, description="New description.")
    preview_image: str | None = Field(default=None, description="Preview image reference.")

    def present_fields(self) -> dict[str, Any]:
        """Return only the fields the caller actually sent, keyed by alias."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class CreateVersionRequest(_RequestModel):
    """Request body for ``POST /api/chains/{id}/versions``.

    Attributes:
        base_prompt: Positive base prompt, may contain ``{character}``.
        negative_prompt: Negative prompt.
        modules: Ordered prompt modules.
        params: Generation parameters.  Only keys the caller sent are stored.
    """

    base_prompt: str = Field(default="", description="Positive base prompt.")
    negative_prompt: str = Field(default="", description="Negative prompt.")
    modules: list[PromptModule] = Field(default_factory=list, description="Prompt modules.")
    params: GenerationParams = Field(
        default_factory=GenerationParams,
        description="Generation parameters.",
    )

    def stored_modules(self) -> list[dict]:
        return [module.model_dump(by_alias=True) for module in self.modules]

    def stored_params(self) -> dict[str, Any]:
        return self.params.model_dump(by_alias=True, exclude_unset=True)


class ChainGenerateRequest(_RequestModel):
    """Request body for ``POST /api/chains/{id}/generate``.

    Attributes:
        version: Version number to generate from, ``None`` for the latest.
        subject: Text substituted for ``{character}`` in the base prompt.
        params: Parameter overrides merged over the version's stored params.
    """

    version: int | None = Field(default=None, ge=1, description="Version number.")
    subject: str = Field(default="", description="Replacement for {character}.")
    params: dict[str, Any] = Field(default_factory=dict, description="Parameter overrides.")


class GenerateRequest(_RequestModel):
    """Structured request body for ``POST /api/generate``.

    Bodies that already look like a provider payload (an ``input`` string plus
    a ``parameters`` object) bypass this model and are proxied unchanged.
    """

    prompt: str = Field(..., description="Positive prompt.")
    negative_prompt: str = Field(default="", description="Negative prompt.")
    params: GenerationParams = Field(
        default_factory=GenerationParams,
        description="Generation parameters.",
    )


class ArtistRequest(_RequestModel):
    """Request body for ``POST /api/artists``."""

    id: str | None = Field(default=None, description="Artist id; generated if omitted.")
    name: str = Field(..., description="Artist name.")
    image_url: str | None = Field(default=None, description="Sample image reference.")


class InspirationRequest(_RequestModel):
    """Request body for ``POST /api/inspirations``."""

    id: str | None = Field(default=None, description="Inspiration id; generated if omitted.")
    title: str = Field(..., description="Inspiration title.")
    image_url: str | None = Field(default=None, description="Image reference.")
    prompt: str | None = Field(default=None, description="Prompt text behind the image.")
    created_at: int | None = Field(default=None, description="Epoch ms; now if omitted.")


class VerifyKeyRequest(_RequestModel):
    """Request body for ``POST /api/verify-key``."""

    key: str | None = Field(default=None, description="Candidate master key.")
