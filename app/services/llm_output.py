"""
Reflecta API - Structured LLM Output Parsing.

Extracts the first well-formed JSON object from free-form model output,
repairs common formatting noise, and validates it against a schema.

Repair passes, each tried only if the previous one failed to parse:
1. the block as extracted
2. control characters escaped (inside strings) or dropped (outside),
   invalid backslash escapes doubled, trailing commas removed
3. pass 2 after mapping typographic double quotes to ASCII quotes
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_MAX_CANDIDATES = 20
_VALID_ESCAPES = set('"\\/bfnrtu')
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
_SMART_DOUBLE_QUOTES = {"“": '"', "”": '"', "„": '"', "‟": '"'}


@dataclass
class StructuredOutput(Generic[T]):
    """
    Either a validated value or a parse failure, never a partial object.

    Attributes:
        value: Validated schema instance when parsing succeeded.
        error: Human-readable reason when it did not.
        raw_block: The JSON block that was validated (or last attempted).
    """

    value: Optional[T] = None
    error: Optional[str] = None
    raw_block: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _strip_code_fence(text: str) -> Optional[str]:
    """Return the body of the first ``` fence, if any."""
    if "```" not in text:
        return None
    start = text.find("```") + 3
    # Skip an optional language tag such as ```json
    newline = text.find("\n", start)
    if newline != -1 and text[start:newline].strip().isalpha():
        start = newline + 1
    end = text.find("```", start)
    if end == -1:
        return text[start:]
    return text[start:end]


def _balanced_block(text: str, start: int) -> Optional[str]:
    """Return the balanced {...} block opening at `start`, string-aware."""
    depth = 0
    closers = ""  # non-empty while inside a string
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if closers:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char in closers:
                closers = ""
            continue

        if char == '"':
            closers = '"'
        elif char == "“":
            closers = '”"'
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def iter_json_blocks(text: str) -> Iterator[str]:
    """
    Yield candidate JSON object blocks in document order.

    A fenced code block is searched first, then the whole text.
    """
    seen = set()
    sources = [s for s in (_strip_code_fence(text), text) if s]
    yielded = 0

    for source in sources:
        position = source.find("{")
        while position != -1 and yielded < _MAX_CANDIDATES:
            block = _balanced_block(source, position)
            if block is not None and block not in seen:
                seen.add(block)
                yielded += 1
                yield block
            position = source.find("{", position + 1)


def repair_json(block: str) -> str:
    """
    Fix escaping noise that breaks json.loads without touching valid content.

    Inside strings: raw newlines/tabs/carriage returns become escapes,
    other control characters are dropped, and backslashes that do not
    start a valid escape are doubled. Outside strings: control characters
    other than whitespace are dropped and trailing commas are removed.
    """
    out: List[str] = []
    in_string = False
    i = 0
    length = len(block)

    while i < length:
        char = block[i]

        if in_string:
            if char == "\\":
                nxt = block[i + 1] if i + 1 < length else ""
                if nxt and nxt in _VALID_ESCAPES:
                    out.append(char + nxt)
                    i += 2
                    continue
                out.append("\\\\")
            elif char == '"':
                in_string = False
                out.append(char)
            elif char in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[char])
            elif ord(char) < 0x20 or 0x7F <= ord(char) <= 0x9F:
                pass
            else:
                out.append(char)
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
        elif char == ",":
            j = i + 1
            while j < length and block[j] in " \t\r\n":
                j += 1
            if j < length and block[j] in "}]":
                i += 1
                continue
            out.append(char)
        elif char in " \t\r\n":
            out.append(char)
        elif ord(char) < 0x20 or 0x7F <= ord(char) <= 0x9F:
            pass
        else:
            out.append(char)
        i += 1

    return "".join(out)


def _normalize_quotes(block: str) -> str:
    for smart, plain in _SMART_DOUBLE_QUOTES.items():
        block = block.replace(smart, plain)
    return block


def loads_lenient(block: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object block, applying the repair passes in order."""
    attempts = (
        lambda b: b,
        repair_json,
        lambda b: repair_json(_normalize_quotes(b)),
    )
    for attempt in attempts:
        try:
            parsed = json.loads(attempt(block))
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def parse_structured(raw_text: Optional[str], schema: Type[T]) -> StructuredOutput[T]:
    """
    Extract, repair and validate the first matching block in `raw_text`.

    Args:
        raw_text: Raw model output, possibly wrapped in prose or fences.
        schema: Pydantic model the block must satisfy.

    Returns:
        StructuredOutput with `value` set on success, `error` otherwise.
    """
    if not raw_text or not raw_text.strip():
        return StructuredOutput(error="empty response")

    first_error: Optional[str] = None
    last_block: Optional[str] = None

    for block in iter_json_blocks(raw_text):
        data = loads_lenient(block)
        if data is None:
            continue
        last_block = block
        try:
            return StructuredOutput(value=schema.model_validate(data), raw_block=block)
        except PydanticValidationError as e:
            if first_error is None:
                first_error = f"{schema.__name__} validation failed: {e.error_count()} error(s): {e.errors()[0].get('msg')}"

    if first_error:
        return StructuredOutput(error=first_error, raw_block=last_block)
    return StructuredOutput(error="no JSON object found in response")
