"""Tests for model discovery helpers."""

from unittest.mock import patch

import pytest

from zz.models import ModelInfo, fetch_available_models, parse_model_list
from zz.setup_wizard import CUSTOM_MODEL, model_choices


class TestParseModelList:
    """Tests for parsing model/list results."""

    def test_data_wrapper(self):
        """Results wrapped in ``data`` are parsed."""
        models = parse_model_list({"data": [
            {"id": "m1", "model": "gpt-a", "displayName": "A", "description": "fast", "isDefault": True},
            {"id": "m2", "model": "gpt-b", "displayName": "B"},
        ]})

        assert models == [
            ModelInfo(id="m1", model="gpt-a", display_name="A", description="fast", is_default=True),
            ModelInfo(id="m2", model="gpt-b", display_name="B"),
        ]

    def test_bare_list_and_fallbacks(self):
        """A bare list works; missing fields fall back to the id."""
        models = parse_model_list([{"id": "m1"}, {"model": "no-id"}, "junk"])
        assert models == [ModelInfo(id="m1", model="m1", display_name="m1")]

    def test_unexpected_shape(self):
        """Anything else yields no models."""
        assert parse_model_list(None) == []
        assert parse_model_list({"data": "nope"}) == []


class TestModelChoices:
    """Tests for the wizard's model menu."""

    def test_default_first(self):
        """The default model is listed first, custom entry last."""
        choices = model_choices([
            ModelInfo(id="1", model="a", display_name="A"),
            ModelInfo(id="2", model="b", display_name="B", description="best", is_default=True),
        ])
        assert choices[0] == ("b", "B - best (default)")
        assert choices[1] == ("a", "A")
        assert choices[-1][0] == CUSTOM_MODEL

    def test_no_models(self):
        """Without models only manual entry is offered."""
        assert model_choices([]) == [(CUSTOM_MODEL, "Enter model name manually")]


class TestFetchAvailableModels:
    """Tests for discovery failure handling."""

    @pytest.mark.asyncio
    async def test_missing_binary_returns_empty(self):
        """A binary that cannot be started yields an empty list."""
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("codex")):
            assert await fetch_available_models("definitely-not-codex", timeout=1.0) == []
