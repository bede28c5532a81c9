from __future__ import annotations

from typing import Any

_CQ_ESCAPES = (("&", "&amp;"), ("[", "&#91;"), ("]", "&#93;"), (",", "&#44;"))


def as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def first_non_empty_str(payload: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit() or (stripped.startswith("-") and stripped[1:].isdigit()):
            return int(stripped)
    return None


def cq_escape(text: str) -> str:
    for raw, escaped in _CQ_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def cq_unescape(text: str) -> str:
    for raw, escaped in reversed(_CQ_ESCAPES):
        text = text.replace(escaped, raw)
    return text


def render_segments(segments: list[Any]) -> str:
    """Render an array-form OneBot message back into its CQ-code string form."""
    parts: list[str] = []
    for raw_segment in segments:
        segment = as_dict(raw_segment)
        kind = first_non_empty_str(segment, "type")
        if kind is None:
            continue
        data = as_dict(segment.get("data"))
        if kind == "text":
            text = data.get("text")
            if isinstance(text, str):
                parts.append(text)
            continue

        params = "".join(
            f",{key}={cq_escape(str(value))}"
            for key, value in data.items()
            if value is not None
        )
        parts.append(f"[CQ:{kind}{params}]")
    return "".join(parts)
