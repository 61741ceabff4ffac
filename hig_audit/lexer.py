"""Tokenizer for C-family UI sources (Swift, Objective-C).

Whitespace and comments never reach the token stream; comments are kept on
the side so suppression markers can be read from them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

TokenKind = Literal["ident", "number", "string", "punct"]

_IDENT_RE = re.compile(r"[@#]?(?:[A-Za-z_]|\$)[A-Za-z0-9_$]*")
_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]+(?:\.[0-9a-fA-F_]+)?(?:[pP][+-]?\d+)?"
    r"|0[bB][01_]+"
    r"|0[oO][0-7_]+"
    r"|\d[\d_]*(?:\.\d[\d_]*)?(?:[eE][+-]?\d+)?[fFlLuU]*"
)
_BACKTICK_RE = re.compile(r"`[^`\n]+`")

# Longest first so the scan is greedy.
PUNCTUATORS = (
    "...",
    "..<",
    "===",
    "!==",
    "->",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "??",
    "+=",
    "-=",
    "*=",
    "/=",
)


@dataclass(frozen=True, slots=True)
class Token:
    """A normalized source token with its original span (1-based)."""

    kind: TokenKind
    text: str
    line: int
    col: int
    end_line: int
    end_col: int


@dataclass(frozen=True, slots=True)
class Comment:
    """Comment text lifted out of the token stream."""

    text: str
    line: int
    end_line: int
    trailing: bool


@dataclass(slots=True)
class LexResult:
    """Tokens plus the side facts the indexer needs."""

    tokens: list[Token] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    code_lines: set[int] = field(default_factory=set)


class _Cursor:
    """Position tracker over the source text."""

    __slots__ = ("text", "pos", "line", "col")

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.line = 1
        self.col = 1

    def advance_to(self, end: int) -> None:
        chunk = self.text[self.pos : end]
        newlines = chunk.count("\n")
        if newlines:
            self.line += newlines
            self.col = len(chunk) - chunk.rfind("\n")
        else:
            self.col += len(chunk)
        self.pos = end


def tokenize(text: str) -> LexResult:
    """Split source text into tokens, comments and code-line facts."""
    result = LexResult()
    cursor = _Cursor(text)
    length = len(text)

    while cursor.pos < length:
        char = text[cursor.pos]

        if char in " \t\r\n\f\v":
            cursor.advance_to(cursor.pos + 1)
            continue

        if text.startswith("//", cursor.pos):
            end = text.find("\n", cursor.pos)
            end = length if end == -1 else end
            _add_comment(result, cursor, end, text[cursor.pos + 2 : end])
            continue

        if text.startswith("/*", cursor.pos):
            end = _block_comment_end(text, cursor.pos)
            body_end = end - 2 if text.startswith("*/", end - 2) else end
            _add_comment(result, cursor, end, text[cursor.pos + 2 : body_end])
            continue

        end = _string_end(text, cursor.pos)
        if end is not None:
            _add_token(result, cursor, "string", end)
            continue

        match = _NUMBER_RE.match(text, cursor.pos)
        if match is not None:
            _add_token(result, cursor, "number", match.end())
            continue

        match = _IDENT_RE.match(text, cursor.pos) or _BACKTICK_RE.match(text, cursor.pos)
        if match is not None:
            _add_token(result, cursor, "ident", match.end())
            continue

        for punct in PUNCTUATORS:
            if text.startswith(punct, cursor.pos):
                _add_token(result, cursor, "punct", cursor.pos + len(punct))
                break
        else:
            _add_token(result, cursor, "punct", cursor.pos + 1)

    return result


def _add_token(result: LexResult, cursor: _Cursor, kind: TokenKind, end: int) -> None:
    line, col = cursor.line, cursor.col
    token_text = cursor.text[cursor.pos : end]
    cursor.advance_to(end)
    token = Token(
        kind=kind,
        text=token_text,
        line=line,
        col=col,
        end_line=cursor.line,
        end_col=cursor.col,
    )
    result.tokens.append(token)
    result.code_lines.add(line)


def _add_comment(result: LexResult, cursor: _Cursor, end: int, body: str) -> None:
    line = cursor.line
    trailing = line in result.code_lines
    cursor.advance_to(end)
    result.comments.append(
        Comment(text=body.strip(), line=line, end_line=cursor.line, trailing=trailing)
    )


def _block_comment_end(text: str, start: int) -> int:
    # Swift block comments nest.
    depth = 0
    pos = start
    length = len(text)
    while pos < length:
        if text.startswith("/*", pos):
            depth += 1
            pos += 2
        elif text.startswith("*/", pos):
            depth -= 1
            pos += 2
            if depth == 0:
                return pos
        else:
            pos += 1
    return length


def _string_end(text: str, start: int) -> int | None:
    """Return the end offset of a string literal starting at ``start``, if any."""
    pos = start
    if text[pos] == "@" and text.startswith('"', pos + 1):
        pos += 1

    hashes = 0
    while pos + hashes < len(text) and text[pos + hashes] == "#":
        hashes += 1
    if hashes and not text.startswith('"', pos + hashes):
        return None
    pos += hashes

    if text.startswith('"""', pos):
        return _scan_string(text, pos + 3, '"""' + "#" * hashes, raw=hashes > 0, multiline=True)
    if text.startswith('"', pos):
        return _scan_string(text, pos + 1, '"' + "#" * hashes, raw=hashes > 0, multiline=False)
    if text[pos] == "'" and not hashes:
        close = text.find("'", pos + 1)
        newline = text.find("\n", pos + 1)
        if close != -1 and (newline == -1 or close < newline):
            while text[close - 1] == "\\" and text[close - 2] != "\\":
                next_close = text.find("'", close + 1)
                if next_close == -1 or (newline != -1 and next_close > newline):
                    return None
                close = next_close
            return close + 1
    return None


def _scan_string(text: str, pos: int, terminator: str, *, raw: bool, multiline: bool) -> int:
    length = len(text)
    escape = "\\" + terminator[1:] if raw else "\\"
    while pos < length:
        if text.startswith(terminator, pos):
            return pos + len(terminator)
        char = text[pos]
        if char == "\n" and not multiline:
            return pos
        if text.startswith(escape, pos):
            after = pos + len(escape)
            if after < length and text[after] == "(":
                pos = _skip_interpolation(text, after + 1)
                continue
            pos = after + 1
            continue
        pos += 1
    return length


def _skip_interpolation(text: str, pos: int) -> int:
    depth = 1
    length = len(text)
    while pos < length and depth:
        char = text[pos]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == '"':
            pos = _scan_string(text, pos + 1, '"', raw=False, multiline=False)
            continue
        elif char == "\n":
            return pos
        pos += 1
    return pos
