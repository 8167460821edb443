"""Tests for form definition loading and caching."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.config.forms import (
    DirectoryFormLoader,
    FormConfigCache,
    StaticFormLoader,
    parse_form_definition,
)
from src.models.enums import ClassificationFlag, ErrorPolicy, FieldType
from src.models.errors import InvalidFormDefinitionError, UnknownFormError


def write_form(directory: Path, form_id: str, data: dict | str) -> Path:
    path = directory / f"{form_id}.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


class TestShippedForms:
    """The definitions under config/forms must always load."""

    def test_all_shipped_forms_valid(self, forms_dir: Path) -> None:
        """Every shipped definition passes validation."""
        loader = DirectoryFormLoader(forms_dir)
        assert "contact-sales" in loader.available()
        for form_id in loader.available():
            assert loader.load(form_id).form_id == form_id

    def test_contact_sales_policy(self, forms_dir: Path) -> None:
        """Policy values and defaults are resolved."""
        definition = DirectoryFormLoader(forms_dir).load("contact-sales")

        assert definition.security.turnstile.on_error == ErrorPolicy.FAIL_CLOSED
        assert definition.security.geolocation.on_error == ErrorPolicy.FAIL_OPEN
        assert "US" in definition.security.geolocation.allowed_countries
        assert definition.get_field("team_size").type == FieldType.SELECT
        assert definition.classification.for_flag(ClassificationFlag.RED)


class TestDirectoryFormLoader:
    """Tests for loading definitions from disk."""

    def test_unknown_form(self, tmp_path: Path) -> None:
        """A missing file is an unknown form."""
        with pytest.raises(UnknownFormError) as exc_info:
            DirectoryFormLoader(tmp_path).load("nope")
        assert exc_info.value.form_id == "nope"

    def test_path_traversal_rejected(self, tmp_path: Path) -> None:
        """Form ids cannot escape the config directory."""
        loader = DirectoryFormLoader(tmp_path / "forms")
        write_form(tmp_path, "secret", {"fields": []})
        with pytest.raises(UnknownFormError):
            loader.load("../secret")

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Malformed JSON is an invalid definition."""
        write_form(tmp_path, "broken", "{not json")
        with pytest.raises(InvalidFormDefinitionError, match="invalid JSON"):
            DirectoryFormLoader(tmp_path).load("broken")

    def test_form_id_defaults_to_file_name(self, tmp_path: Path) -> None:
        """A definition without form_id takes its file name."""
        write_form(tmp_path, "minimal", {"fields": [{"id": "email", "type": "email"}]})
        definition = DirectoryFormLoader(tmp_path).load("minimal")
        assert definition.form_id == "minimal"

    def test_available_empty_dir(self, tmp_path: Path) -> None:
        assert DirectoryFormLoader(tmp_path / "missing").available() == []


class TestParseFormDefinition:
    """Tests for structural validation of definitions."""

    def test_mismatched_form_id(self) -> None:
        """A document declaring another form id is rejected."""
        with pytest.raises(InvalidFormDefinitionError, match="declares form_id"):
            parse_form_definition({"form_id": "other"}, "contact")

    def test_unknown_keys_rejected(self) -> None:
        """Typos in policy keys are caught at load time."""
        with pytest.raises(InvalidFormDefinitionError):
            parse_form_definition({"security": {"captcha": {}}}, "contact")

    def test_duplicate_rule_names(self) -> None:
        """Rule names are unique across tiers."""
        rule = {"name": "dup", "conditions": [{"signal": "a", "value": 1}]}
        with pytest.raises(InvalidFormDefinitionError, match="Duplicate rule"):
            parse_form_definition(
                {"classification": {"red": [rule], "green": [rule]}}, "contact"
            )

    def test_ordering_operator_needs_number(self) -> None:
        """gt/gte/lt/lte conditions need a numeric operand."""
        with pytest.raises(InvalidFormDefinitionError, match="needs a number"):
            parse_form_definition(
                {
                    "classification": {
                        "red": [
                            {
                                "name": "r",
                                "conditions": [
                                    {"signal": "s", "operator": "gt", "value": "x"}
                                ],
                            }
                        ]
                    }
                },
                "contact",
            )

    def test_select_needs_options(self) -> None:
        with pytest.raises(InvalidFormDefinitionError, match="options"):
            parse_form_definition(
                {"fields": [{"id": "size", "type": "select"}]}, "contact"
            )

    def test_not_an_object(self) -> None:
        with pytest.raises(InvalidFormDefinitionError):
            parse_form_definition(["fields"], "contact")


class TestFormConfigCache:
    """Tests for the definition cache."""

    def test_loads_once(self) -> None:
        """A definition is loaded on first use and then served from cache."""
        definition = parse_form_definition({}, "contact")
        loader = MagicMock()
        loader.load.return_value = definition

        cache = FormConfigCache(loader)
        assert cache.get("contact") is definition
        assert cache.get("contact") is definition
        loader.load.assert_called_once_with("contact")

    def test_failures_not_cached(self, tmp_path: Path) -> None:
        """A fixed definition is picked up on the next request."""
        cache = FormConfigCache(DirectoryFormLoader(tmp_path))
        with pytest.raises(UnknownFormError):
            cache.get("late")

        write_form(tmp_path, "late", {"fields": []})
        assert cache.get("late").form_id == "late"

    def test_invalidate(self) -> None:
        """Invalidated definitions are reloaded."""
        loader = MagicMock()
        loader.load.side_effect = lambda fid: parse_form_definition({}, fid)

        cache = FormConfigCache(loader)
        cache.get("a")
        cache.get("b")
        cache.invalidate("a")
        assert cache.cached() == ["b"]
        cache.invalidate()
        assert cache.cached() == []

    def test_preload(self) -> None:
        """Preload resolves every available definition."""
        cache = FormConfigCache(
            StaticFormLoader(
                [parse_form_definition({}, "a"), parse_form_definition({}, "b")]
            )
        )
        assert cache.preload() == ["a", "b"]
        assert cache.cached() == ["a", "b"]

    def test_static_loader_unknown(self) -> None:
        with pytest.raises(UnknownFormError):
            StaticFormLoader([]).load("missing")
