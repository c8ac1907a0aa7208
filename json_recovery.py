"""Locate JSON inside model replies and salvage replies cut off at the output ceiling."""

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from result import JSONParseError

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OPEN_FENCE_TAIL = re.compile(r"\s*```\s*$")
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_SCALAR_CHARS = frozenset("0123456789+-.eEtruefalsn")
_CLOSERS = {"{": "}", "[": "]"}


def _fenced_json(text: str) -> Optional[str]:
    match = _CODE_BLOCK.search(text)
    if match:
        extracted = match.group(1).strip()
        if extracted.startswith(("{", "[")):
            return extracted
    return None


def extract_json(text: str) -> str:
    """Return the substring of a model reply most likely to be the JSON payload."""
    fenced = _fenced_json(text)
    if fenced is not None:
        return fenced

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        return text[first_brace:last_brace + 1]

    # Arrays only win when no object starts before them
    first_bracket = text.find("[")
    last_bracket = text.rfind("]")
    if first_bracket != -1 and last_bracket > first_bracket:
        if first_brace == -1 or first_bracket < first_brace:
            return text[first_bracket:last_bracket + 1]

    return text.strip()


def safe_parse_json(text: str, context: str) -> Any:
    """Deserialize the JSON payload of a reply, raising JSONParseError on failure."""
    extracted = extract_json(text)
    try:
        return json.loads(extracted)
    except ValueError as e:
        logger.warning("[%s] Failed to parse JSON: %s", context, e)
        logger.warning("[%s] Raw text (first 500 chars): %s", context, text[:500])
        logger.warning("[%s] Extracted JSON attempt: %s", context, extracted[:500])
        raise JSONParseError(str(e)) from e


def _string_end(text: str, start: int) -> Optional[int]:
    """Index just past the closing quote of the string opening at ``start``."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i + 1
        i += 1
    return None


def _last_safe_cut(text: str) -> Tuple[int, Tuple[str, ...]]:
    """
    Find the last offset where the text can be cut and closed into valid JSON.

    A safe cut sits right after a value completes or a keyed container opens,
    never inside a key, after a colon, or after a comma. Returns the offset and
    the containers still open there, outermost first.
    """
    stack: List[List[str]] = []  # [opener, expecting]
    safe_at, safe_stack = 0, ()
    i, n = 0, len(text)

    def mark_value_done(end: int) -> None:
        nonlocal safe_at, safe_stack
        if stack:
            stack[-1][1] = "comma"
        safe_at, safe_stack = end, tuple(frame[0] for frame in stack)

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch == '"':
            end = _string_end(text, i)
            if end is None:
                break
            if stack and stack[-1][0] == "{" and stack[-1][1] == "key":
                stack[-1][1] = "colon"
            else:
                mark_value_done(end)
            i = end
        elif ch in "{[":
            # An array element that never gets a complete member is dropped, not emptied
            in_array = bool(stack) and stack[-1][0] == "["
            stack.append([ch, "key" if ch == "{" else "value"])
            if not in_array:
                safe_at, safe_stack = i + 1, tuple(frame[0] for frame in stack)
            i += 1
        elif ch in "}]":
            if not stack or _CLOSERS[stack[-1][0]] != ch:
                break
            stack.pop()
            mark_value_done(i + 1)
            i += 1
        elif ch == ":":
            if stack:
                stack[-1][1] = "value"
            i += 1
        elif ch == ",":
            if stack:
                stack[-1][1] = "key" if stack[-1][0] == "{" else "value"
            i += 1
        else:
            j = i
            while j < n and text[j] in _SCALAR_CHARS:
                j += 1
            # A scalar touching the end of the reply may itself be cut short
            if j == i or j == n:
                break
            token = text[i:j]
            if token not in ("true", "false", "null") and not _NUMBER.fullmatch(token):
                break
            mark_value_done(j)
            i = j

    return safe_at, safe_stack


def _isolate_payload(text: str) -> str:
    """Like extract_json, but keeps everything after the payload start."""
    fenced = _fenced_json(text)
    if fenced is not None:
        return fenced

    start = text.find("{")
    if start == -1:
        start = text.find("[")
    if start == -1:
        return text.strip()
    return _OPEN_FENCE_TAIL.sub("", text[start:]).strip()


def repair_truncated_json(text: str) -> str:
    """
    Close a JSON document that was cut off mid-stream.

    Drops the trailing incomplete property or element (and its comma), then
    appends the closing brackets and braces for every container still open,
    innermost first. Values are never invented.
    """
    open_braces = text.count("{") - text.count("}")
    open_brackets = text.count("[") - text.count("]")
    cut, open_stack = _last_safe_cut(text)

    if open_braces <= 0 and open_brackets <= 0 and not open_stack and cut >= len(text.rstrip()):
        return text

    closers = "".join(_CLOSERS[opener] for opener in reversed(open_stack))
    logger.info(
        "Attempted to fix JSON: dropped %d trailing chars, appended %r",
        len(text) - cut, closers,
    )
    return text[:cut].rstrip() + closers


def attempt_partial_parse(text: str, context: str) -> Optional[Any]:
    """Repair and deserialize a truncated reply; None when nothing usable remains."""
    payload = _isolate_payload(text)
    repaired = repair_truncated_json(payload)
    if not repaired:
        logger.warning("[%s] Could not recover: no JSON payload in truncated reply", context)
        return None
    try:
        return json.loads(repaired)
    except ValueError as e:
        logger.warning("[%s] Could not recover: %s", context, e)
        return None
