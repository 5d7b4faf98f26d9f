"""
Test cases for target definitions and targets files.
"""

import json

import pytest
from pydantic import ValidationError

from tracker.exceptions import InvalidConfiguration
from tracker.extraction import JsonFieldRule, RegexRule
from tracker.targets import build_target, load_targets

DEFAULTS = {"timeout_ms": 15000, "user_agent": "TokenWatch/1.0"}


def write_targets(tmp_path, document) -> str:
    path = tmp_path / "targets.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestBuildTarget:
    """Test cases for build_target."""

    def test_full_definition(self):
        """A complete definition builds an immutable target."""
        target = build_target({
            "id": "oracle-cpu",
            "name": "Oracle CPU",
            "locator": "https://www.oracle.com/security-alerts/",
            "extraction_rule": {"kind": "regex", "pattern": r"Update - (\w+ \d{4})"},
            "timeout_ms": 20000
        })

        assert target.id == "oracle-cpu"
        assert target.display_name == "Oracle CPU"
        assert target.timeout_ms == 20000
        assert isinstance(target.extraction_rule, RegexRule)
        with pytest.raises(ValidationError):
            target.locator = "https://example.com/"

    def test_defaults_fill_missing_values(self):
        """Configured defaults apply only where the definition is silent."""
        target = build_target(
            {"id": "a", "locator": "https://example.com/", "pattern": r"v(\d+)"},
            DEFAULTS
        )
        assert target.timeout_ms == 15000
        assert target.user_agent == "TokenWatch/1.0"

        target = build_target(
            {"id": "b", "locator": "https://example.com/", "pattern": r"v(\d+)", "timeout_ms": 500},
            DEFAULTS
        )
        assert target.timeout_ms == 500

    def test_pattern_shorthand(self):
        """A bare pattern becomes a regex rule."""
        target = build_target({
            "id": "a",
            "locator": "https://example.com/",
            "pattern": r"(\w+) (\d{4})",
            "group": 2,
            "ignore_case": True
        })
        assert target.extraction_rule.group == 2
        assert target.extraction_rule.ignore_case is True

    def test_rule_kind_inferred(self):
        """A rule without kind is json when it has a path."""
        target = build_target({
            "id": "a",
            "locator": "https://example.com/release.json",
            "extraction_rule": {"path": "tag_name"}
        })
        assert isinstance(target.extraction_rule, JsonFieldRule)

    def test_shorthand_and_rule_conflict(self):
        """Pattern shorthand and an explicit rule cannot be combined."""
        with pytest.raises(InvalidConfiguration):
            build_target({
                "id": "a",
                "locator": "https://example.com/",
                "pattern": r"v(\d+)",
                "extraction_rule": {"kind": "regex", "pattern": r"v(\d+)"}
            })

    def test_invalid_rule_names_target(self):
        """Rule errors are reported with the target id."""
        with pytest.raises(InvalidConfiguration, match="oracle-cpu"):
            build_target({"id": "oracle-cpu", "locator": "https://example.com/", "pattern": "no groups"})

    def test_invalid_fields(self):
        """Bad ids, empty locators and missing rules are rejected."""
        for definition in (
            {"id": "../escape", "locator": "https://example.com/", "pattern": r"(\d+)"},
            {"id": "a", "locator": "", "pattern": r"(\d+)"},
            {"id": "a", "locator": "https://example.com/"},
            {"id": "a", "locator": "https://example.com/", "pattern": r"(\d+)", "timeout_ms": 0},
        ):
            with pytest.raises(InvalidConfiguration):
                build_target(definition)

    def test_non_mapping_rejected(self):
        """A target definition must be an object."""
        with pytest.raises(InvalidConfiguration):
            build_target(["oracle-cpu"])


class TestLoadTargets:
    """Test cases for load_targets."""

    def test_list_document(self, tmp_path):
        """A plain list of targets is accepted."""
        path = write_targets(tmp_path, [
            {"id": "a", "locator": "https://example.com/a", "pattern": r"v(\d+)"},
            {"id": "b", "locator": "https://example.com/b.json", "extraction_rule": {"kind": "json", "path": "v"}},
        ])
        targets = load_targets(path, DEFAULTS)
        assert [target.id for target in targets] == ["a", "b"]
        assert all(target.timeout_ms == 15000 for target in targets)

    def test_object_document(self, tmp_path):
        """An object with a targets list is accepted."""
        path = write_targets(tmp_path, {"targets": [
            {"id": "a", "locator": "https://example.com/a", "pattern": r"v(\d+)"}
        ]})
        assert len(load_targets(path)) == 1

    def test_duplicate_ids(self, tmp_path):
        """Two targets cannot share a state record."""
        path = write_targets(tmp_path, [
            {"id": "a", "locator": "https://example.com/a", "pattern": r"v(\d+)"},
            {"id": "a", "locator": "https://example.com/b", "pattern": r"v(\d+)"},
        ])
        with pytest.raises(InvalidConfiguration, match="duplicate"):
            load_targets(path)

    def test_bad_entry_reports_position(self, tmp_path):
        """Errors name the entry that failed."""
        path = write_targets(tmp_path, [
            {"id": "a", "locator": "https://example.com/a", "pattern": r"v(\d+)"},
            {"id": "b", "locator": "https://example.com/b", "pattern": r"v\d+"},
        ])
        with pytest.raises(InvalidConfiguration, match="entry 1"):
            load_targets(path)

    def test_unreadable_files(self, tmp_path):
        """Missing files, invalid JSON and wrong shapes are configuration errors."""
        with pytest.raises(InvalidConfiguration):
            load_targets(tmp_path / "missing.json")

        broken = tmp_path / "broken.json"
        broken.write_text("[{", encoding="utf-8")
        with pytest.raises(InvalidConfiguration):
            load_targets(broken)

        with pytest.raises(InvalidConfiguration):
            load_targets(write_targets(tmp_path, {"targets": "oracle-cpu"}))
