"""Compose a version's stored prompt parts into a single positive prompt.

A version stores a base prompt and an ordered list of modules.  The composed
prompt is the base prompt followed by the content of every active module::

    [Base Prompt with {character} substituted], [Module 1], [Module 2], ...

Sections are joined with ``", "``.  The ``{character}`` placeholder in the base
prompt is replaced by the caller's subject text; when no subject is given the
placeholder disappears together with the separator around it, so no empty
fragments (``"a, , b"``) or dangling commas reach the provider.

Usage
-----
::

    compiled = build_prompt(
        "masterpiece, best quality, {character}",
        [PromptModule(id="m1", name="Lighting", content="cinematic lighting")],
        subject="1girl, silver hair",
    )
    # "masterpiece, best quality, 1girl, silver hair, cinematic lighting"
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from promptchain.core.models import PromptModule

CHARACTER_PLACEHOLDER = "{character}"

_SEPARATOR_RUN = re.compile(r"(?:\s*,\s*)+")


def _tidy(fragment: str) -> str:
    """Collapse separator runs and strip leading/trailing separators."""
    collapsed = _SEPARATOR_RUN.sub(", ", fragment)
    return collapsed.strip().strip(",").strip()


def build_prompt(
    base_prompt: str,
    modules: Iterable[PromptModule],
    subject: str = "",
) -> str:
    """Compile the positive prompt for a version.

    Args:
        base_prompt: The version's base prompt, optionally containing the
            ``{character}`` placeholder.
        modules: The version's modules in stored order.  Inactive modules are
            skipped.
        subject: Text substituted for ``{character}``.

    Returns:
        The composed prompt.
    """
    parts: list[str] = []

    base = _tidy(base_prompt.replace(CHARACTER_PLACEHOLDER, subject.strip()))
    if base:
        parts.append(base)

    for module in modules:
        if not module.is_active:
            continue
        content = _tidy(module.content)
        if content:
            parts.append(content)

    return ", ".join(parts)
