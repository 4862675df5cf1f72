"""Best-effort decoding of generative model replies.

Models asked for strict JSON still wrap it in prose or code fences, return
numbered lists, or answer with a bare word. Each decoder walks a fixed
chain (balanced JSON, then line/delimiter heuristics, then label scan) and
returns a ``Decoded`` that says whether it worked. Nothing here raises.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_CLOSERS = {"{": "}", "[": "]"}
_LIST_LINE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.+?)\s*$")
_FENCE = re.compile(r"```(?:json|JSON)?")
_LEAD_IN = re.compile(r"^\s*(?:summary|topics|insights|response|answer)\s*:\s*", re.IGNORECASE)


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Outcome of one decoding attempt.

    ``method`` names the step that succeeded (``json``, ``list``,
    ``comma``, ``label``, ``text``) or ``none`` on failure.
    """

    ok: bool
    value: T | None = None
    method: str = "none"

    @classmethod
    def success(cls, value: T, method: str) -> Decoded[T]:
        return cls(ok=True, value=value, method=method)

    @classmethod
    def failure(cls) -> Decoded[T]:
        return cls(ok=False)


# -- Balanced JSON -------------------------------------------------------------


def _match_end(text: str, start: int) -> int | None:
    """Index of the bracket closing the one at *start*, or None."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i
    return None


def iter_balanced(text: str, opener: str) -> Iterator[str]:
    """Yield every balanced ``{...}`` or ``[...]`` substring, left to right."""
    start = text.find(opener)
    while start != -1:
        end = _match_end(text, start)
        if end is not None:
            yield text[start : end + 1]
        start = text.find(opener, start + 1)


def decode_json(text: str, kind: type[dict] | type[list]) -> Decoded[Any]:
    """Decode the first balanced JSON object (or array) found in *text*."""
    if not text:
        return Decoded.failure()
    opener = "{" if kind is dict else "["
    for candidate in iter_balanced(text, opener):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, kind):
            return Decoded.success(value, "json")
    return Decoded.failure()


# -- Helpers -------------------------------------------------------------------


def _strip_noise(text: str) -> str:
    return _LEAD_IN.sub("", _FENCE.sub("", text)).strip()


def _clean_items(items: Sequence[Any], limit: int, min_length: int) -> list[str]:
    cleaned: list[str] = []
    for item in items:
        if isinstance(item, dict):
            # {"text": "..."} or {"topic": "..."}: take the first string value
            item = next((v for v in item.values() if isinstance(v, str)), "")
        if not isinstance(item, (str, int, float)):
            continue
        value = str(item).strip().strip("\"'").strip()
        if len(value) < min_length or value in cleaned:
            continue
        cleaned.append(value)
        if len(cleaned) >= limit:
            break
    return cleaned


# -- Public decoders -----------------------------------------------------------


def decode_text(text: str, key: str = "summary", min_length: int = 10) -> Decoded[str]:
    """Decode a free-text answer, preferring ``{"<key>": "..."}``."""
    obj = decode_json(text, dict)
    if obj.ok:
        value = obj.value.get(key)
        if isinstance(value, str) and len(value.strip()) >= min_length:
            return Decoded.success(value.strip(), "json")
        return Decoded.failure()

    plain = _strip_noise(text or "")
    if plain.startswith(("{", "[")):
        return Decoded.failure()
    if len(plain) >= min_length:
        return Decoded.success(plain, "text")
    return Decoded.failure()


def decode_list(
    text: str,
    *,
    key: str | None = None,
    limit: int = 5,
    min_item_length: int = 1,
    allow_empty: bool = False,
) -> Decoded[list[str]]:
    """Decode a list answer.

    Tries, in order: a JSON array, a JSON object holding the list under
    *key*, numbered or bulleted lines, then comma-separated values.
    """
    arr = decode_json(text, list)
    if arr.ok:
        items = _clean_items(arr.value, limit, min_item_length)
        if items or allow_empty:
            return Decoded.success(items, "json")

    if key is not None:
        obj = decode_json(text, dict)
        if obj.ok and isinstance(obj.value.get(key), list):
            items = _clean_items(obj.value[key], limit, min_item_length)
            if items or allow_empty:
                return Decoded.success(items, "json")

    plain = _strip_noise(text or "")
    lines = [m.group(1) for line in plain.splitlines() if (m := _LIST_LINE.match(line))]
    if lines:
        items = _clean_items(lines, limit, min_item_length)
        if items:
            return Decoded.success(items, "list")

    if "," in plain and not plain.startswith(("{", "[")):
        parts = [part for part in plain.replace("\n", ",").split(",") if len(part.strip()) <= 80]
        items = _clean_items(parts, limit, min_item_length)
        if items:
            return Decoded.success(items, "comma")

    return Decoded.failure()


def decode_label(text: str, allowed: Sequence[str], key: str) -> Decoded[str]:
    """Decode one of *allowed* labels from ``{"<key>": ...}`` or bare text."""
    obj = decode_json(text, dict)
    if obj.ok:
        value = obj.value.get(key)
        if isinstance(value, str) and value.strip().lower() in allowed:
            return Decoded.success(value.strip().lower(), "json")

    lowered = (text or "").lower()
    best: tuple[int, str] | None = None
    for label in allowed:
        match = re.search(rf"\b{re.escape(label)}\b", lowered)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), label)
    if best is not None:
        return Decoded.success(best[1], "label")
    return Decoded.failure()
