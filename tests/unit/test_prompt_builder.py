"""Tests for promptchain.api.prompt_builder — composing a version's prompt."""

from __future__ import annotations

from promptchain.api.prompt_builder import build_prompt
from promptchain.core.models import PromptModule


def _module(content: str, active: bool = True) -> PromptModule:
    return PromptModule(id=content or "empty", name="Module", content=content, is_active=active)


class TestBuildPrompt:
    def test_subject_substituted(self):
        result = build_prompt("masterpiece, {character}", [], subject="1girl, silver hair")
        assert result == "masterpiece, 1girl, silver hair"

    def test_active_modules_appended_in_order(self):
        modules = [_module("cinematic lighting"), _module("watercolor")]
        result = build_prompt("masterpiece", modules)
        assert result == "masterpiece, cinematic lighting, watercolor"

    def test_inactive_modules_skipped(self):
        modules = [_module("cinematic lighting", active=False), _module("watercolor")]
        assert build_prompt("masterpiece", modules) == "masterpiece, watercolor"

    def test_empty_subject_leaves_no_dangling_separator(self):
        result = build_prompt("masterpiece, best quality, {character}", [_module("lighting")])
        assert result == "masterpiece, best quality, lighting"

    def test_placeholder_in_the_middle(self):
        result = build_prompt("masterpiece, {character}, detailed", [])
        assert result == "masterpiece, detailed"

    def test_empty_module_content_skipped(self):
        assert build_prompt("base", [_module(""), _module("  ,  ")]) == "base"

    def test_empty_base_prompt(self):
        assert build_prompt("", [_module("lighting")]) == "lighting"

    def test_seed_version_shape(self):
        result = build_prompt(
            "masterpiece, best quality, {character}",
            [_module("cinematic lighting")],
            subject="1boy",
        )
        assert result == "masterpiece, best quality, 1boy, cinematic lighting"
