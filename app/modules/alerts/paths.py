"""
Dotted metric paths such as ``recovery.score.resting_heart_rate`` or
``cycles.0.strain``, parsed once into typed segments and walked over vendor
payloads.

Walking rules:
- a ``Field`` segment reads a mapping key (case-sensitive);
- an ``Index`` segment reads a list position;
- whenever a list is met where a field is expected, its first (most recent)
  element is used, and an empty list ends the walk;
- the terminal value must be numeric or a numeric string, and finite.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Field:
    name: str


@dataclass(frozen=True)
class Index:
    position: int


Segment = Union[Field, Index]


class InvalidMetricPath(ValueError):
    pass


@dataclass(frozen=True)
class MetricPath:
    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, raw: str) -> "MetricPath":
        if not raw or not raw.strip():
            raise InvalidMetricPath("metric path is empty")
        segments: list[Segment] = []
        for part in raw.strip().split("."):
            if not part:
                raise InvalidMetricPath(f"empty segment in metric path {raw!r}")
            if part.isdigit():
                segments.append(Index(int(part)))
            else:
                segments.append(Field(part))
        return cls(tuple(segments))

    def __str__(self) -> str:
        return ".".join(
            seg.name if isinstance(seg, Field) else str(seg.position)
            for seg in self.segments
        )

    def strip_prefix(self, name: str) -> "MetricPath":
        if self.segments and self.segments[0] == Field(name):
            return MetricPath(self.segments[1:])
        return self

    def head(self) -> str | None:
        first = self.segments[0] if self.segments else None
        return first.name if isinstance(first, Field) else None

    def walk(self, data: Any) -> Any:
        current = data
        for segment in self.segments:
            if isinstance(segment, Index):
                if not isinstance(current, list) or segment.position >= len(current):
                    return None
                current = current[segment.position]
                continue
            current = _first_if_list(current)
            if not isinstance(current, dict) or segment.name not in current:
                return None
            current = current[segment.name]
        return _first_if_list(current)

    def resolve_number(self, data: Any) -> float | None:
        return to_number(self.walk(data))


def _first_if_list(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def to_number(value: Any) -> float | None:
    """Coerce a terminal value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
