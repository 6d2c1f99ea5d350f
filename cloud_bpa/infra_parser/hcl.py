"""
HCL-lite: a tolerant scanner for Terraform source.

This is deliberately not an HCL grammar. Block bodies are located by brace
matching (aware of strings, heredocs and comments), and attribute values are
read as strings, booleans, numbers, lists and maps. Anything else, such as
references, function calls, conditionals and for-expressions, is kept as the
raw source text.
"""

import re
import textwrap
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import BestEffortSkip, StructuralParseError

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_NUMBER = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")
_HEREDOC = re.compile(r"<<(-?)([A-Za-z_][A-Za-z0-9_]*)[ \t]*\r?\n")
_FOR_EXPRESSION = re.compile(r"[\[{]\s*for\s")
_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r"}


@dataclass
class Block:
    """A top-level `keyword "label" ... { body }` block."""
    keyword: str
    labels: List[str]
    body: Optional[str]  # None when the closing brace is missing
    line: int


@dataclass
class TopLevel:
    blocks: List[Block] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)


def line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def _comment_end(text: str, pos: int) -> Optional[int]:
    """If a comment starts at pos, return the index just past it (newline not consumed)."""
    if text.startswith("#", pos) or text.startswith("//", pos):
        end = text.find("\n", pos)
        return len(text) if end < 0 else end
    if text.startswith("/*", pos):
        end = text.find("*/", pos + 2)
        return len(text) if end < 0 else end + 2
    return None


def _skip_string(text: str, pos: int) -> int:
    """text[pos] is an opening quote. Returns the index past the closing quote, or -1."""
    i, n, depth = pos + 1, len(text), 0
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "$%" and text.startswith("{", i + 1):
            depth += 1
            i += 2
            continue
        if depth > 0:
            if ch == '"':
                j = _skip_string(text, i)
                if j < 0:
                    return -1
                i = j
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
            i += 1
            continue
        if ch == '"':
            return i + 1
        if ch == "\n":
            return -1
        i += 1
    return -1


def _heredoc_span(text: str, pos: int) -> Optional[Tuple[int, int, int, bool]]:
    """(content_start, content_end, index_after_marker, indented) for a heredoc at pos; index is -1 if unterminated."""
    m = _HEREDOC.match(text, pos)
    if not m:
        return None
    closing = re.compile(rf"^[ \t]*{re.escape(m.group(2))}[ \t]*\r?$", re.M).search(text, m.end())
    if not closing:
        return m.end(), len(text), -1, bool(m.group(1))
    return m.end(), closing.start(), closing.end(), bool(m.group(1))


def find_block_end(text: str, open_pos: int) -> int:
    """Index of the brace matching text[open_pos], or -1 if it never closes."""
    depth, i, n = 0, open_pos, len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            j = _skip_string(text, i)
            if j < 0:
                return -1
            i = j
            continue
        if ch == "<" and text.startswith("<<", i):
            span = _heredoc_span(text, i)
            if span is not None:
                if span[2] < 0:
                    return -1
                i = span[2]
                continue
        end = _comment_end(text, i)
        if end is not None:
            i = end
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _scalar(raw: str) -> Any:
    if raw in ("true", "false"):
        return raw == "true"
    if _NUMBER.fullmatch(raw):
        return float(raw) if any(c in raw for c in ".eE") else int(raw)
    return raw


def _unescape(raw: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(0)), raw)


class _BodyParser:
    """Recursive-descent reader over one block body."""

    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos
        self.end = len(text)

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < self.end else ""

    def _skip(self, newlines: bool = True) -> None:
        while self.pos < self.end:
            ch = self.text[self.pos]
            if ch in " \t\r" or (newlines and ch in "\n,"):
                self.pos += 1
                continue
            end = _comment_end(self.text, self.pos)
            if end is None:
                break
            self.pos = end

    def _skip_line(self, terminator: Optional[str]) -> None:
        start = self.pos
        while self.pos < self.end and self.text[self.pos] != "\n" and self.text[self.pos] != terminator:
            self.pos += 1
        if self.pos == start and self.text[self.pos:self.pos + 1] != terminator:
            self.pos += 1

    def _read_string(self) -> str:
        end = _skip_string(self.text, self.pos)
        if end < 0:
            raise BestEffortSkip(f"unterminated string at line {line_of(self.text, self.pos)}")
        value = _unescape(self.text[self.pos + 1:end - 1])
        self.pos = end
        return value

    def _read_heredoc(self, span: Tuple[int, int, int, bool]) -> str:
        start, stop, after, indented = span
        if after < 0:
            raise BestEffortSkip(f"unterminated heredoc at line {line_of(self.text, self.pos)}")
        self.pos = after
        content = self.text[start:stop]
        return textwrap.dedent(content) if indented else content

    def _read_key(self) -> Optional[str]:
        if self._peek() == '"':
            return self._read_string()
        m = _IDENT.match(self.text, self.pos)
        if not m:
            return None
        self.pos = m.end()
        return m.group()

    def read_labels(self) -> List[str]:
        labels = []
        while True:
            self._skip(newlines=False)
            if self._peek() == '"':
                labels.append(self._read_string())
                continue
            m = _IDENT.match(self.text, self.pos)
            if not m:
                return labels
            labels.append(m.group())
            self.pos = m.end()

    def _at_value_end(self) -> bool:
        self._skip(newlines=False)
        return self.pos >= self.end or self._peek() in "\n,]})"

    def _read_raw(self) -> Any:
        start, depth = self.pos, 0
        while self.pos < self.end:
            ch = self.text[self.pos]
            if ch == '"':
                j = _skip_string(self.text, self.pos)
                if j < 0:
                    raise BestEffortSkip(f"unterminated string at line {line_of(self.text, self.pos)}")
                self.pos = j
                continue
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                if depth == 0:
                    break
                depth -= 1
            elif depth == 0 and (ch in "\n," or _comment_end(self.text, self.pos) is not None):
                break
            self.pos += 1
        if depth > 0:
            raise BestEffortSkip(f"unbalanced expression at line {line_of(self.text, start)}")
        raw = self.text[start:self.pos].strip()
        if not raw:
            raise BestEffortSkip(f"missing value at line {line_of(self.text, start)}")
        return _scalar(raw)

    def _parse_list(self) -> List[Any]:
        items = []
        while True:
            self._skip()
            if self.pos >= self.end:
                raise BestEffortSkip("unterminated list")
            if self._peek() == "]":
                self.pos += 1
                return items
            items.append(self.parse_value())

    def parse_value(self) -> Any:
        self._skip(newlines=False)
        start = self.pos
        ch = self._peek()
        if not ch:
            raise BestEffortSkip("missing value")
        if ch in "[{" and _FOR_EXPRESSION.match(self.text, self.pos):
            return self._read_raw()

        span = _heredoc_span(self.text, self.pos) if ch == "<" else None
        if ch == '"':
            value: Any = self._read_string()
        elif span is not None:
            return self._read_heredoc(span)
        elif ch == "[":
            self.pos += 1
            value = self._parse_list()
        elif ch == "{":
            self.pos += 1
            value = self.parse_body("}")
        else:
            return self._read_raw()

        if not self._at_value_end():
            # "a" == var.b and friends: keep the whole expression as text
            self.pos = start
            return self._read_raw()
        return value

    def parse_body(self, terminator: Optional[str] = None) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        block_keys = set()
        while True:
            self._skip()
            if self.pos >= self.end:
                if terminator:
                    raise BestEffortSkip("unterminated block")
                return result
            if self._peek() == terminator:
                self.pos += 1
                return result

            key = self._read_key()
            if key is None:
                self._skip_line(terminator)
                continue

            self._skip(newlines=False)
            if self._peek() in ("=", ":") and not self.text.startswith("==", self.pos):
                self.pos += 1
                result[key] = self.parse_value()
                block_keys.discard(key)
                continue

            labels = self.read_labels()
            if self._peek() == "{":
                self.pos += 1
                nested: Any = self.parse_body("}")
                for label in reversed(labels):
                    nested = {label: nested}
                if key in block_keys:
                    existing = result[key]
                    result[key] = existing + [nested] if isinstance(existing, list) else [existing, nested]
                else:
                    result[key] = nested
                    block_keys.add(key)
                continue

            self._skip_line(terminator)


def parse_body(text: str) -> Dict[str, Any]:
    """Parse the inside of a block into attributes and nested blocks. Raises BestEffortSkip."""
    return _BodyParser(text).parse_body()


def scan_top_level(text: str, file_name: Optional[str] = None) -> TopLevel:
    """
    Split a Terraform document into top-level blocks and attributes.

    A block whose braces never close is returned with body None and ends the
    scan. A closing brace with no open block is a structural error.
    """
    top = TopLevel()
    pos, n = 0, len(text)
    while pos < n:
        ch = text[pos]
        if ch in " \t\r\n;":
            pos += 1
            continue
        end = _comment_end(text, pos)
        if end is not None:
            pos = end
            continue
        if ch == "}":
            raise StructuralParseError(
                "Invalid Terraform file format", file_name=file_name,
                cause=f"unbalanced closing brace at line {line_of(text, pos)}",
            )

        m = _IDENT.match(text, pos)
        if not m:
            newline = text.find("\n", pos)
            pos = n if newline < 0 else newline + 1
            continue

        start, keyword = pos, m.group()
        reader = _BodyParser(text, m.end())
        try:
            labels = reader.read_labels()
        except BestEffortSkip:
            labels = []
        pos = reader.pos

        if pos < n and text[pos] == "{":
            close = find_block_end(text, pos)
            if close < 0:
                top.blocks.append(Block(keyword, labels, None, line_of(text, start)))
                break
            top.blocks.append(Block(keyword, labels, text[pos + 1:close], line_of(text, start)))
            pos = close + 1
            continue

        if pos < n and text[pos] == "=" and not labels:
            reader.pos = pos + 1
            try:
                top.attributes[keyword] = reader.parse_value()
                pos = reader.pos
                continue
            except BestEffortSkip:
                pass

        newline = text.find("\n", pos)
        pos = n if newline < 0 else newline + 1
    return top
