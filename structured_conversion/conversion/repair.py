"""Lenient clean-up applied once when strict JSON parsing fails."""

import re

from structured_conversion.core import extract_json_payload

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'', re.DOTALL)
_UNESCAPED_DOUBLE_QUOTE = re.compile(r'(?<!\\)"')


def extract_candidate(raw_text: str) -> str:
    """
    Pull the most likely JSON object out of surrounding prose.

    Prefers a fenced code block; otherwise takes the span from the first
    ``{`` to the last ``}``.

    Args:
        raw_text (str): Model response.

    Returns:
        str: Candidate JSON text (may still be malformed).
    """
    text = extract_json_payload(raw_text)
    if text.startswith("{") or text.startswith("["):
        return text
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def _requote(literal: str) -> str:
    """Turn a single-quoted literal into a JSON string."""
    body = literal[1:-1].replace("\\'", "'")
    return '"' + _UNESCAPED_DOUBLE_QUOTE.sub(r'\\"', body) + '"'


def _repair_syntax(chunk: str) -> str:
    fixed = _BARE_KEY.sub(r'\1"\2"\3', chunk)
    return _TRAILING_COMMA.sub(r"\1", fixed)


def repair_json(text: str) -> str:
    """
    Fix the syntax slips models commonly make.

    Removes trailing commas, turns single-quoted strings into double-quoted
    ones and quotes bare identifier keys. Text inside string literals is
    never rewritten.

    Args:
        text (str): Candidate JSON text.

    Returns:
        str: Repaired text.
    """
    pieces: list[str] = []
    position = 0
    for match in _STRING_LITERAL.finditer(text):
        pieces.append(_repair_syntax(text[position : match.start()]))
        literal = match.group()
        pieces.append(_requote(literal) if literal.startswith("'") else literal)
        position = match.end()
    pieces.append(_repair_syntax(text[position:]))
    return "".join(pieces)
