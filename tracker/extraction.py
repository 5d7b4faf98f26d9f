"""
Extraction rules and the extractor.

A rule pulls a single scalar token out of fetched content. Rules are
validated when they are built, so a malformed rule fails at startup and
never in the middle of a detection cycle.
"""

import json
import re
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidConfiguration


class RegexRule(BaseModel):
    """
    Regular expression rule.

    Without an explicit ``group`` the pattern must contain exactly one
    capturing group. ``group`` may be a group index or a group name.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["regex"] = "regex"
    pattern: str = Field(..., description="Regular expression applied to the content")
    group: Optional[Union[int, str]] = Field(default=None, description="Capture group to return")
    ignore_case: bool = Field(default=False)
    multiline: bool = Field(default=False)
    dotall: bool = Field(default=False)

    @property
    def flags(self) -> int:
        flags = 0
        if self.ignore_case:
            flags |= re.IGNORECASE
        if self.multiline:
            flags |= re.MULTILINE
        if self.dotall:
            flags |= re.DOTALL
        return flags

    @model_validator(mode="after")
    def check_pattern(self) -> "RegexRule":
        """Compile the pattern and make sure the requested group exists."""
        try:
            compiled = re.compile(self.pattern, self.flags)
        except re.error as e:
            raise InvalidConfiguration(f"Invalid extraction pattern {self.pattern!r}: {e}") from e

        if self.group is None:
            if compiled.groups != 1:
                raise InvalidConfiguration(
                    f"Pattern {self.pattern!r} must have exactly one capturing group "
                    f"(found {compiled.groups}); pass an explicit group otherwise"
                )
        elif isinstance(self.group, int):
            if self.group < 0 or self.group > compiled.groups:
                raise InvalidConfiguration(
                    f"Group {self.group} does not exist in pattern {self.pattern!r}"
                )
        elif self.group not in compiled.groupindex:
            raise InvalidConfiguration(
                f"Named group {self.group!r} does not exist in pattern {self.pattern!r}"
            )
        return self

    def find(self, content: str) -> Optional[str]:
        """Return the raw capture of the first match, or None."""
        match = re.compile(self.pattern, self.flags).search(content)
        if match is None:
            return None
        # A group that did not take part in the match captured nothing
        return match.group(1 if self.group is None else self.group)


class JsonFieldRule(BaseModel):
    """
    Dotted-path lookup into a JSON document, e.g. ``releases.0.version``.

    Numeric segments index into lists. Anything that does not resolve to a
    scalar is treated as no match.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["json"] = "json"
    path: str = Field(..., description="Dotted path to a scalar value")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        """Reject empty paths and empty segments."""
        if not v or any(segment == "" for segment in v.split(".")):
            raise InvalidConfiguration(f"Invalid JSON path {v!r}")
        return v

    def find(self, content: str) -> Optional[str]:
        try:
            data: Any = json.loads(content)
        except ValueError:
            return None

        for segment in self.path.split("."):
            if isinstance(data, list):
                if not segment.isdecimal() or int(segment) >= len(data):
                    return None
                data = data[int(segment)]
            elif isinstance(data, dict):
                if segment not in data:
                    return None
                data = data[segment]
            else:
                return None

        if data is None or isinstance(data, (dict, list)):
            return None
        if isinstance(data, bool):
            return "true" if data else "false"
        return str(data)


ExtractionRule = Annotated[Union[RegexRule, JsonFieldRule], Field(discriminator="kind")]


def normalize(value: Optional[str]) -> Optional[str]:
    """Strip incidental whitespace; absent stays absent."""
    if value is None:
        return None
    return value.strip()


def extract(content: str, rule: Union[RegexRule, JsonFieldRule]) -> Optional[str]:
    """
    Apply an extraction rule to fetched content.

    Args:
        content: Decoded document text
        rule: Extraction rule to apply

    Returns:
        Normalized token, or None when the rule found nothing. An empty
        string is a valid token and is returned as such.
    """
    return normalize(rule.find(content))
