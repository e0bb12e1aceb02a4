"""Delta protocol shared by the kind handlers, the streaming session and clients.

A delta is a ``(type, content)`` pair. Every document kind owns exactly one
delta type. Text deltas are appended to the running content; all other kinds
carry the complete content so far and replace it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    TEXT = "text"
    CODE = "code"
    SLIDE = "slide"
    CHART = "chart"


DELTA_TYPES: Mapping[ArtifactKind, str] = {
    ArtifactKind.TEXT: "text-delta",
    ArtifactKind.CODE: "code-delta",
    ArtifactKind.SLIDE: "slide-delta",
    ArtifactKind.CHART: "chart-delta",
}

KIND_BY_DELTA_TYPE: Mapping[str, ArtifactKind] = {value: key for key, value in DELTA_TYPES.items()}

APPEND_KINDS = frozenset({ArtifactKind.TEXT})
STRUCTURED_KINDS = frozenset({ArtifactKind.SLIDE, ArtifactKind.CHART})

CHART_TYPES = ("bar", "line", "pie", "scatter", "area", "doughnut")


@dataclass(frozen=True)
class Delta:
    type: str
    content: str

    @classmethod
    def for_kind(cls, kind: ArtifactKind, content: str) -> "Delta":
        return cls(type=DELTA_TYPES[kind], content=content)

    @property
    def kind(self) -> ArtifactKind | None:
        return KIND_BY_DELTA_TYPE.get(self.type)

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


def is_append_kind(kind: ArtifactKind) -> bool:
    return kind in APPEND_KINDS


def serialize_structured(value: Mapping[str, Any]) -> str:
    """Serialize a structured artifact the way it is stored and streamed."""
    return json.dumps(value, indent=2, ensure_ascii=False)


def is_likely_csv(text: str) -> bool:
    return (
        ("," in text or ";" in text)
        and ("\n" in text or "\r" in text)
        and "{" not in text
        and "[" not in text
    )


def _valid_slide(value: Mapping[str, Any]) -> bool:
    return bool(value.get("title")) or isinstance(value.get("slides"), list)


def _valid_chart(value: Mapping[str, Any]) -> bool:
    data = value.get("data")
    return bool(value.get("type")) and isinstance(data, list) and len(data) > 0


STRUCTURED_VALIDATORS: Mapping[ArtifactKind, Callable[[Mapping[str, Any]], bool]] = {
    ArtifactKind.SLIDE: _valid_slide,
    ArtifactKind.CHART: _valid_chart,
}


def is_valid_structured(kind: ArtifactKind, value: Any) -> bool:
    """Check an already-decoded object against the kind's minimal fields."""
    validator = STRUCTURED_VALIDATORS.get(kind)
    if validator is None:
        return True
    return isinstance(value, Mapping) and validator(value)


def parse_structured(kind: ArtifactKind, content: Any) -> dict[str, Any] | None:
    """Decode and validate structured delta content.

    Returns ``None`` for anything that must not reach view-state: non-strings,
    blank payloads, invalid JSON, non-objects and objects missing the kind's
    required fields.
    """
    if not isinstance(content, str) or not content.strip():
        logger.warning("Dropping empty %s delta", kind.value)
        return None
    try:
        value = json.loads(content)
    except ValueError:
        if is_likely_csv(content):
            logger.warning("Dropping CSV-like %s delta", kind.value)
        else:
            logger.warning("Dropping unparseable %s delta: %.80r", kind.value, content)
        return None
    if not is_valid_structured(kind, value):
        logger.warning("Dropping %s delta missing required fields", kind.value)
        return None
    return value
