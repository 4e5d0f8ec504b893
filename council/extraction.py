"""Strict JSON extraction from free-text model output."""

import json
import re
from typing import Any

from council.providers.base import MalformedResponse

# A fence line: optional indent, three backticks, optional language tag, nothing else.
_FENCE_LINE = re.compile(r"^[ \t]*```[ \t]*([\w+-]*)[ \t]*$", re.MULTILINE)


def _fenced_blocks(text: str) -> list[tuple[str, str]]:
    """Return ``(tag, body)`` for each properly closed fenced block, in order.

    A closing fence carries no tag; a tagged fence seen while a block is open
    starts a new block and the unterminated one is dropped.
    """
    blocks: list[tuple[str, str]] = []
    opening: re.Match[str] | None = None
    for fence in _FENCE_LINE.finditer(text):
        tag = fence.group(1).lower()
        if opening is None or tag:
            opening = fence
            continue
        blocks.append((opening.group(1).lower(), text[opening.end():fence.start()].strip()))
        opening = None
    return blocks


def _candidate(text: str) -> str:
    blocks = _fenced_blocks(text)
    for tag, body in blocks:
        if tag == "json":
            return body
    for tag, body in blocks:
        if not tag:
            return body
    return text.strip()


def extract_json_block(text: str, model: str | None = None) -> dict[str, Any]:
    """Parse the JSON object a model was asked to return.

    Contract: the object is inside a fenced ```json block (the first one wins,
    an untagged fence is used only when no ``json`` block exists), or the whole
    reply is the object. Nothing else is attempted.

    Raises:
        MalformedResponse: No parseable object under the contract.
    """
    candidate = _candidate(text)
    if not candidate:
        raise MalformedResponse(model, "Empty response, expected a JSON object")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponse(model, f"Response is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse(model, f"Expected a JSON object, got {type(data).__name__}")
    return data
