"""Pydantic models for the structured values stored inside a version.

A version's ``modules`` and ``params`` columns are JSON blobs.  These models
give them shape at the boundary: the request compiler consumes
:class:`GenerationParams`, and the API validates incoming modules with
:class:`PromptModule`.

Field names follow the camelCase keys the frontend stores (``qualityToggle``,
``ucPreset``, ...) through aliases, while Python code uses snake_case.
Unknown keys are kept, so parameters written by a newer frontend survive a
round trip through the store.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class PromptModule(_CamelModel):
    """A named, toggleable prompt fragment.

    Attributes:
        id: Stable identifier of the module within its chain.
        name: Display name.
        content: Prompt text contributed when the module is active.
        is_active: Whether the module is included when composing a prompt.
    """

    id: str = Field(..., description="Module identifier.")
    name: str = Field(default="", description="Display name.")
    content: str = Field(default="", description="Prompt fragment text.")
    is_active: bool = Field(default=True, description="Include when composing.")


class Character(_CamelModel):
    """A positioned character caption.

    Coordinates are fractions of the canvas (0.0-1.0) where the provider
    should centre the character.
    """

    prompt: str = Field(default="", description="Positive character caption.")
    negative_prompt: str | None = Field(default=None, description="Negative caption.")
    x: float = Field(default=0.5, description="Horizontal centre (0-1).")
    y: float = Field(default=0.5, description="Vertical centre (0-1).")


class GenerationParams(_CamelModel):
    """Generation parameters for one provider call.

    Optional toggles default to ``None`` so the compiler can tell an explicit
    value apart from an absent one.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        steps: Number of sampling steps.
        scale: Prompt guidance scale.
        sampler: Provider sampler name.
        seed: Explicit seed.  ``None`` or ``-1`` lets the provider choose;
            ``0`` is a real seed.
        quality_toggle: Append the quality tags unless explicitly ``False``.
        uc_preset: Index into the negative preset table (4 = none).
        characters: Positioned character captions, in order.
        use_coords: Whether the provider should honour character positions.
            Defaults to "characters present".
        variety: Enable the variety boost.
        cfg_rescale: Guidance rescale factor.
    """

    width: int = Field(default=832, description="Image width in pixels.")
    height: int = Field(default=1216, description="Image height in pixels.")
    steps: int = Field(default=28, description="Sampling steps.")
    scale: float = Field(default=5, description="Guidance scale.")
    sampler: str = Field(default="k_euler_ancestral", description="Sampler name.")
    seed: int | None = Field(default=None, description="Seed; None or -1 = random.")
    quality_toggle: bool | None = Field(default=None, description="Append quality tags.")
    uc_preset: int | None = Field(default=None, description="Negative preset index.")
    characters: list[Character] = Field(default_factory=list, description="Characters.")
    use_coords: bool | None = Field(default=None, description="Honour positions.")
    variety: bool | None = Field(default=None, description="Variety boost.")
    cfg_rescale: float | None = Field(default=None, description="Guidance rescale.")
