"""Compile prompts and parameters into the provider's request payload.

The provider accepts a single JSON document containing both the legacy flat
prompt fields (``input``, ``parameters.negative_prompt``) and the structured
caption fields (``v4_prompt``, ``v4_negative_prompt``).  This module builds
that document from a prompt, a negative prompt and :class:`GenerationParams`.

Compilation Rules
-----------------
Applied in order:

1. **Seed** -- ``None`` or ``-1`` omits the ``seed`` key so the provider picks
   one.  Every other value, ``0`` included, is sent literally.
2. **Quality tags** -- :data:`QUALITY_TAGS` is appended to the prompt unless
   ``qualityToggle`` is explicitly ``False``.
3. **Negative preset** -- ``ucPreset`` (default ``0``) selects a fragment of
   :data:`UC_PRESETS` that is prepended to the negative prompt.  Index ``4``
   means none.
4. **Character captions** -- each character yields one positive and one
   negative caption at the same coordinates, in the same order.
5. **Coordinates** -- ``useCoords`` if given, otherwise "characters present".
6. **Fixed fields** -- sampler flags and schedule settings from
   :data:`_FIXED_PARAMETERS`.

Usage
-----
::

    payload = compile_request(
        "1girl, solo",
        "blurry",
        GenerationParams(seed=42, characters=[Character(prompt="girl", x=0.3, y=0.5)]),
    )
"""

from __future__ import annotations

from typing import Any

from promptchain.core.models import GenerationParams

DEFAULT_MODEL = "nai-diffusion-4-5-full"

# Sentinel seed meaning "let the provider choose".
RANDOM_SEED = -1

QUALITY_TAGS = ", very aesthetic, masterpiece, no text"

# Negative prompt presets, indexed by ``ucPreset``.
UC_PRESETS: tuple[str, ...] = (
    # 0: Heavy
    "lowres, artistic error, film grain, scan artifacts, worst quality, bad quality, "
    "jpeg artifacts, very displeasing, chromatic aberration, dithering, halftone, "
    "screentone, multiple views, logo, too many watermarks, negative space, blank page, ",
    # 1: Light
    "lowres, artistic error, scan artifacts, worst quality, bad quality, jpeg artifacts, "
    "multiple views, very displeasing, too many watermarks, negative space, blank page, ",
    # 2: Furry focus
    "{{worst quality}}, [displeasing], {unusual pupils}, guide lines, {{unfinished}}, {bad}, "
    "url, artist name, {{tall image}}, mosaic, {sketch page}, comic panel, impact (font), "
    "[dated], {logo}, ych, {what}, {where is your god now}, {distorted text}, repeated text, "
    "{floating head}, {1994}, {widescreen}, absolutely everyone, sequence, "
    "{compression artifacts}, hard translated, {cropped}, {commissioner name}, unknown text, "
    "high contrast, ",
    # 3: Human focus
    "lowres, artistic error, film grain, scan artifacts, worst quality, bad quality, "
    "jpeg artifacts, very displeasing, chromatic aberration, dithering, halftone, "
    "screentone, multiple views, logo, too many watermarks, negative space, blank page, "
    "@_@, mismatched pupils, glowing eyes, bad anatomy, ",
    # 4: None
    "",
)
UC_PRESET_NONE = 4

# ``skip_cfg_above_sigma`` value that enables the variety boost.
VARIETY_SIGMA = 58

# Provider flags that never depend on the chain data.
_FIXED_PARAMETERS: dict[str, Any] = {
    "params_version": 3,
    "n_samples": 1,
    "sm": False,
    "sm_dyn": False,
    "dynamic_thresholding": False,
    "controlnet_strength": 1,
    "legacy": False,
    "add_original_image": True,
    "uncond_scale": 1,
    "noise_schedule": "karras",
    "deliberate_euler_ancestral_bug": False,
    "prefer_brownian": True,
}


def resolve_seed(seed: int | None) -> int | None:
    """Return the seed to send, or ``None`` when the provider should choose."""
    if seed is None or seed == RANDOM_SEED:
        return None
    return seed


def apply_quality_tags(prompt: str, quality_toggle: bool | None) -> str:
    """Append :data:`QUALITY_TAGS` unless the toggle is explicitly off."""
    if quality_toggle is False:
        return prompt
    return prompt + QUALITY_TAGS


def apply_uc_preset(negative: str, uc_preset: int | None) -> str:
    """Prepend the selected negative preset fragment.

    Index 4 and indices outside :data:`UC_PRESETS` leave *negative* unchanged.
    """
    preset_id = 0 if uc_preset is None else uc_preset
    if preset_id == UC_PRESET_NONE or not 0 <= preset_id < len(UC_PRESETS):
        return negative
    return UC_PRESETS[preset_id] + negative


def build_character_captions(params: GenerationParams) -> tuple[list[dict], list[dict]]:
    """Build mirrored positive and negative character caption lists.

    Returns:
        Tuple of ``(positive, negative)`` caption lists of equal length, with
        identical ``centers`` at matching indices.
    """
    positive: list[dict] = []
    negative: list[dict] = []
    for character in params.characters:
        centers = [{"x": character.x, "y": character.y}]
        positive.append({"char_caption": character.prompt, "centers": centers})
        negative.append(
            {"char_caption": character.negative_prompt or "", "centers": list(centers)}
        )
    return positive, negative


def compile_request(
    prompt: str,
    negative: str,
    params: GenerationParams,
    *,
    model: str = DEFAULT_MODEL,
) -> dict:
    """Compile a generation request into the provider's payload.

    This is a pure function: it performs no I/O and does not mutate
    *params*.

    Args:
        prompt: Positive prompt as composed by the caller.
        negative: Negative prompt as composed by the caller.
        params: Generation parameters.
        model: Provider model identifier.

    Returns:
        The JSON-serialisable payload for the provider's generate endpoint.
    """
    seed = resolve_seed(params.seed)
    final_prompt = apply_quality_tags(prompt, params.quality_toggle)
    final_negative = apply_uc_preset(negative, params.uc_preset)

    char_captions, char_negative_captions = build_character_captions(params)
    has_characters = bool(params.characters)
    use_coords = params.use_coords if params.use_coords is not None else has_characters

    parameters: dict[str, Any] = {
        "width": params.width,
        "height": params.height,
        "scale": params.scale,
        "sampler": params.sampler,
        "steps": params.steps,
        "skip_cfg_above_sigma": VARIETY_SIGMA if params.variety else None,
        "cfg_rescale": params.cfg_rescale if params.cfg_rescale is not None else 0,
        "qualityToggle": params.quality_toggle is not False,
        "ucPreset": params.uc_preset if params.uc_preset is not None else 0,
        "negative_prompt": final_negative,
        "v4_prompt": {
            "caption": {
                "base_caption": final_prompt,
                "char_captions": char_captions,
            },
            "use_coords": use_coords,
            "use_order": True,
        },
        "v4_negative_prompt": {
            "caption": {
                "base_caption": final_negative,
                "char_captions": char_negative_captions,
            },
            "legacy_uc": False,
        },
        **_FIXED_PARAMETERS,
    }

    if seed is not None:
        parameters["seed"] = seed

    return {
        "input": final_prompt,
        "model": model,
        "action": "generate",
        "parameters": parameters,
    }


def sent_seed(payload: dict) -> int | None:
    """Return the seed carried by a compiled (or raw) payload, if any."""
    parameters = payload.get("parameters")
    if not isinstance(parameters, dict):
        return None
    seed = parameters.get("seed")
    if isinstance(seed, bool) or not isinstance(seed, int):
        return None
    return seed
