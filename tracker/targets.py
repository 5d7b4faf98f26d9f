"""
Loading target definitions.

A targets file is JSON, either a list of targets or an object with a
``targets`` list. Each entry looks like::

    {
        "id": "oracle-cpu",
        "name": "Oracle Critical Patch Update",
        "locator": "https://www.oracle.com/security-alerts/",
        "extraction_rule": {"kind": "regex", "pattern": "Critical Patch Update - (\\\\w+ \\\\d{4})"},
        "timeout_ms": 20000
    }

A bare ``pattern`` (and optional ``group``) may be given instead of an
``extraction_rule`` object.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .exceptions import InvalidConfiguration
from .models import Target

RULE_SHORTHAND_KEYS = ("pattern", "group", "ignore_case", "multiline", "dotall")


def build_target(data: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None) -> Target:
    """
    Build a Target from a plain mapping.

    Args:
        data: Target definition
        defaults: Values used when the definition omits them
            (``timeout_ms``, ``user_agent``)

    Raises:
        InvalidConfiguration: The definition is invalid
    """
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Target definition must be an object, got {type(data).__name__}")

    definition = dict(data)
    for key, value in (defaults or {}).items():
        if definition.get(key) is None and value is not None:
            definition[key] = value

    shorthand = {key: definition.pop(key) for key in RULE_SHORTHAND_KEYS if key in definition}
    if shorthand:
        if "extraction_rule" in definition:
            raise InvalidConfiguration(
                f"Target '{definition.get('id')}' defines both 'pattern' and 'extraction_rule'"
            )
        definition["extraction_rule"] = {"kind": "regex", **shorthand}

    rule = definition.get("extraction_rule")
    if isinstance(rule, dict) and "kind" not in rule:
        definition["extraction_rule"] = {"kind": "json" if "path" in rule else "regex", **rule}

    try:
        return Target(**definition)
    except (ValidationError, InvalidConfiguration) as e:
        raise InvalidConfiguration(f"Invalid target '{definition.get('id')}': {e}") from e


def load_targets(path: Union[str, Path], defaults: Optional[Dict[str, Any]] = None) -> List[Target]:
    """
    Load and validate every target in a targets file.

    Raises:
        InvalidConfiguration: Missing or unreadable file, invalid JSON,
            invalid entries or duplicate ids
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidConfiguration(f"Cannot read targets file {path}: {e}") from e

    try:
        document = json.loads(raw)
    except ValueError as e:
        raise InvalidConfiguration(f"Targets file {path} is not valid JSON: {e}") from e

    entries = document.get("targets") if isinstance(document, dict) else document
    if not isinstance(entries, list):
        raise InvalidConfiguration(f"Targets file {path} must contain a list of targets")

    targets: List[Target] = []
    seen = set()
    for index, entry in enumerate(entries):
        try:
            target = build_target(entry, defaults)
        except InvalidConfiguration as e:
            raise InvalidConfiguration(f"{path} entry {index}: {e}") from e
        if target.id in seen:
            raise InvalidConfiguration(f"{path} entry {index}: duplicate target id '{target.id}'")
        seen.add(target.id)
        targets.append(target)

    return targets
