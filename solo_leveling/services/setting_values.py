"""Typed representation of stored system setting values.

Settings are persisted as text alongside a type tag. The tag is resolved once,
at the storage boundary, into one of the value variants below so callers never
re-inspect the raw string.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class SettingType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"

    @classmethod
    def parse(cls, tag: str | None) -> SettingType:
        """Map a stored type tag to a member; unknown tags are plain strings."""
        try:
            return cls((tag or "").strip().lower())
        except ValueError:
            return cls.STRING


class SettingDecodeError(ValueError):
    """Raised when a stored value cannot be decoded under its declared type."""


@dataclass(frozen=True, slots=True)
class StringValue:
    value: str
    type = SettingType.STRING


@dataclass(frozen=True, slots=True)
class NumberValue:
    value: float
    type = SettingType.NUMBER


@dataclass(frozen=True, slots=True)
class BoolValue:
    value: bool
    type = SettingType.BOOLEAN


@dataclass(frozen=True, slots=True)
class JsonValue:
    value: Any
    type = SettingType.JSON


SettingValue = Union[StringValue, NumberValue, BoolValue, JsonValue]

# Longest numeric prefix accepted by a lenient float parse ("12px" -> 12.0).
_NUMBER_PREFIX = re.compile(
    r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)


def parse_number(raw: str) -> float:
    """Parse the leading numeric portion of ``raw``; NaN when there is none."""
    match = _NUMBER_PREFIX.match(raw.lstrip())
    if match is None:
        return math.nan
    text = match.group(0)
    if text.endswith("Infinity"):
        return -math.inf if text.startswith("-") else math.inf
    return float(text)


def decode_setting(raw: str | None, setting_type: SettingType | str) -> SettingValue:
    """Decode ``raw`` under ``setting_type``.

    Raises:
        SettingDecodeError: when a JSON setting holds malformed JSON.
    """
    kind = setting_type if isinstance(setting_type, SettingType) else SettingType.parse(setting_type)
    text = raw if raw is not None else ""

    if kind is SettingType.NUMBER:
        return NumberValue(parse_number(text))
    if kind is SettingType.BOOLEAN:
        return BoolValue(text == "true")
    if kind is SettingType.JSON:
        try:
            return JsonValue(json.loads(text))
        except (json.JSONDecodeError, TypeError) as exc:
            raise SettingDecodeError(f"Malformed JSON setting value: {exc}") from exc
    return StringValue(text)


def encode_setting(value: Any, setting_type: SettingType | str) -> str:
    """Serialize ``value`` into the text form stored for ``setting_type``."""
    kind = setting_type if isinstance(setting_type, SettingType) else SettingType.parse(setting_type)

    if kind is SettingType.JSON:
        return json.dumps(value)
    if kind is SettingType.BOOLEAN:
        if isinstance(value, str):
            return "true" if value.strip().lower() == "true" else "false"
        return "true" if value else "false"
    if kind is SettingType.NUMBER:
        return _format_number(value)
    return str(value)


def _format_number(value: Any) -> str:
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)
