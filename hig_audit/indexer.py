"""Source indexer: file discovery, tokenization and structural facts.

The structural pass is deliberately shallow. It tracks brace scopes and call
parentheses so a rule can ask "is this literal an argument of ``.system(...)``
inside ``var body``" without a real parser for the language.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hig_audit.errors import EngineError, SourceIndexError
from hig_audit.lexer import Token, tokenize
from hig_audit.suppressions import Directive, parse_directives

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".swift", ".m", ".mm", ".h")
DEFAULT_SKIP_DIRS = ("Pods", "Carthage", "DerivedData", "build", "node_modules")
DEFAULT_READ_TIMEOUT_SECONDS = 5.0

DECLARATION_KEYWORDS = {
    "struct",
    "class",
    "enum",
    "protocol",
    "extension",
    "actor",
    "func",
    "var",
    "let",
    "init",
    "deinit",
    "subscript",
    "get",
    "set",
    "willSet",
    "didSet",
    "@interface",
    "@implementation",
    "@protocol",
}
# Keywords whose scope is named after the keyword itself.
SELF_NAMED_KEYWORDS = {"init", "deinit", "subscript", "get", "set", "willSet", "didSet"}
CONTROL_KEYWORDS = {
    "if",
    "else",
    "for",
    "while",
    "switch",
    "guard",
    "do",
    "catch",
    "repeat",
    "defer",
}
NOT_CALLABLE = CONTROL_KEYWORDS | {"return", "in", "func", "init", "subscript", "case", "where"}
CONTINUATION_END = {",", "(", "[", ":", "=", "->", ".", "&&", "||", "??", "where"}
CONTINUATION_START = {".", ":", "->", "where", "{", "&&", "||", "??"}
BLOCK_NAME = "<block>"
CLOSURE_NAME = "<closure>"


@dataclass(frozen=True, slots=True)
class Scope:
    """An enclosing brace scope."""

    name: str
    keyword: str | None = None


@dataclass(frozen=True, slots=True)
class CallSite:
    """A call (or Objective-C message send) with the labels of its arguments."""

    name: str
    qualified: str
    line: int
    labels: tuple[str, ...] = ()

    def matches(self, pattern: str) -> bool:
        return fnmatch.fnmatchcase(self.name, pattern) or fnmatch.fnmatchcase(
            self.qualified, pattern
        )


@dataclass(slots=True)
class SourceUnit:
    """One indexed file: tokens plus per-token scope and call facts."""

    path: str
    tokens: list[Token]
    scopes: list[tuple[Scope, ...]]
    calls: list[tuple[int, ...]]
    call_sites: list[CallSite]
    directives: list[Directive] = field(default_factory=list)
    code_lines: frozenset[int] = frozenset()
    content_hash: str = ""
    _lines: dict[int, list[int]] | None = field(default=None, repr=False)

    def scope_names(self, index: int) -> tuple[str, ...]:
        return tuple(scope.name for scope in self.scopes[index])

    def enclosing_calls(self, index: int) -> list[CallSite]:
        """Enclosing calls for a token, outermost first."""
        return [self.call_sites[call_id] for call_id in self.calls[index]]

    def innermost_call(self, index: int) -> CallSite | None:
        call_ids = self.calls[index]
        return self.call_sites[call_ids[-1]] if call_ids else None

    def in_scope(self, index: int, patterns: tuple[str, ...]) -> bool:
        return any(
            fnmatch.fnmatchcase(name, pattern)
            for name in self.scope_names(index)
            for pattern in patterns
        )

    def line_token_indices(self) -> dict[int, list[int]]:
        """Token indices grouped by starting line, in line order."""
        if self._lines is None:
            grouped: dict[int, list[int]] = {}
            for index, token in enumerate(self.tokens):
                grouped.setdefault(token.line, []).append(index)
            self._lines = grouped
        return self._lines

    def normalized_line(self, line: int) -> str:
        indices = self.line_token_indices().get(line, [])
        return " ".join(self.tokens[index].text for index in indices)


@dataclass(slots=True)
class IndexOptions:
    """Discovery and read settings for the indexer."""

    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    skip_dirs: tuple[str, ...] = DEFAULT_SKIP_DIRS
    read_timeout_seconds: float | None = DEFAULT_READ_TIMEOUT_SECONDS


@dataclass(frozen=True, slots=True)
class IndexWarning:
    """A file that was skipped, and why."""

    path: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "reason": self.reason}


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A discovered file: absolute location plus its report path."""

    absolute: Path
    relative: str


@dataclass(frozen=True, slots=True)
class SourceText:
    """Decoded file content ready for indexing."""

    path: str
    text: str
    content_hash: str


@dataclass(slots=True)
class IndexResult:
    units: list[SourceUnit] = field(default_factory=list)
    warnings: list[IndexWarning] = field(default_factory=list)


def discover_files(
    root: Path, options: IndexOptions
) -> tuple[list[SourceFile], list[IndexWarning]]:
    """Walk ``root`` and return candidate files in sorted order."""
    if root.is_file():
        if root.suffix.lower() not in {ext.lower() for ext in options.extensions}:
            reason = f"extension '{root.suffix}' is not a configured source extension"
            return ([], [IndexWarning(path=root.name, reason=reason)])
        return ([SourceFile(absolute=root, relative=root.name)], [])
    if not root.is_dir():
        raise EngineError(f"Source path does not exist or is not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise EngineError(f"Source path is not readable: {root}")

    extensions = {ext.lower() for ext in options.extensions}
    skip_dirs = set(options.skip_dirs)
    warnings: list[IndexWarning] = []

    def on_error(exc: OSError) -> None:
        failed = Path(exc.filename) if exc.filename else root
        warnings.append(IndexWarning(path=_relative(root, failed), reason=_os_reason(exc)))

    found: list[SourceFile] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames[:] = sorted(
            name for name in dirnames if not name.startswith(".") and name not in skip_dirs
        )
        for filename in sorted(filenames):
            absolute = Path(dirpath) / filename
            if absolute.suffix.lower() not in extensions:
                continue
            relative = _relative(root, absolute)
            if options.include and not any(
                fnmatch.fnmatch(relative, pattern) for pattern in options.include
            ):
                continue
            if options.exclude and any(
                fnmatch.fnmatch(relative, pattern) for pattern in options.exclude
            ):
                continue
            found.append(SourceFile(absolute=absolute, relative=relative))

    found.sort(key=lambda item: item.relative)
    return (found, warnings)


def load_source(source: SourceFile, options: IndexOptions) -> SourceText:
    """Read and decode one file, raising ``SourceIndexError`` on failure."""
    raw = _read_bytes(source, options.read_timeout_seconds)
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SourceIndexError(source.relative, f"not valid UTF-8 ({exc.reason})") from exc
    return SourceText(
        path=source.relative,
        text=text,
        content_hash=hashlib.sha256(raw).hexdigest(),
    )


def build_unit(path: str, text: str, *, content_hash: str = "") -> SourceUnit:
    """Tokenize ``text`` and derive the structural facts for it."""
    lexed = tokenize(text)
    scopes, calls, call_sites = _analyze(lexed.tokens)
    return SourceUnit(
        path=path,
        tokens=lexed.tokens,
        scopes=scopes,
        calls=calls,
        call_sites=call_sites,
        directives=parse_directives(lexed.comments, lexed.code_lines, path=path),
        code_lines=frozenset(lexed.code_lines),
        content_hash=content_hash,
    )


def index_file(source: SourceFile, options: IndexOptions) -> SourceUnit:
    loaded = load_source(source, options)
    return build_unit(loaded.path, loaded.text, content_hash=loaded.content_hash)


def index_tree(root: Path, options: IndexOptions | None = None) -> IndexResult:
    """Index every matching file under ``root`` sequentially.

    The engine runs the same steps on a worker pool; this entry point is for
    callers that want to keep the units around for re-scans.
    """
    effective = options or IndexOptions()
    files, warnings = discover_files(root, effective)
    result = IndexResult(warnings=list(warnings))
    for source in files:
        try:
            result.units.append(index_file(source, effective))
        except SourceIndexError as exc:
            logger.debug(f"Skipping {exc.path}: {exc.reason}")
            result.warnings.append(IndexWarning(path=exc.path, reason=exc.reason))
    return result


def _read_bytes(source: SourceFile, timeout: float | None) -> bytes:
    if timeout is None:
        try:
            return source.absolute.read_bytes()
        except OSError as exc:
            raise SourceIndexError(source.relative, _os_reason(exc)) from exc

    box: dict[str, Any] = {}

    def target() -> None:
        try:
            box["data"] = source.absolute.read_bytes()
        except OSError as exc:
            box["error"] = exc

    # Daemon thread so a hung read never blocks interpreter exit.
    reader = threading.Thread(target=target, name=f"read:{source.relative}", daemon=True)
    reader.start()
    reader.join(timeout)
    if reader.is_alive():
        raise SourceIndexError(source.relative, f"read timed out after {timeout:g}s")
    if "error" in box:
        raise SourceIndexError(source.relative, _os_reason(box["error"])) from box["error"]
    return box["data"]


def _relative(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _os_reason(exc: OSError) -> str:
    return exc.strerror or exc.__class__.__name__


class _Open:
    """An open bracket on the structural stack."""

    __slots__ = ("char", "call_id", "labels", "operand", "saved_boundary")

    def __init__(self, char: str, call_id: int | None = None, saved_boundary: int = -1) -> None:
        self.char = char
        self.call_id = call_id
        self.labels: list[str] = []
        self.operand = False
        self.saved_boundary = saved_boundary


_CLOSERS = {")": "(", "]": "[", "}": "{"}


def _analyze(
    tokens: list[Token],
) -> tuple[list[tuple[Scope, ...]], list[tuple[int, ...]], list[CallSite]]:
    scopes_out: list[tuple[Scope, ...]] = []
    calls_out: list[tuple[int, ...]] = []
    raw_calls: list[tuple[str, str, int]] = []
    call_labels: list[list[str]] = []

    stack: list[_Open] = []
    scope_stack: list[Scope] = []
    current_scopes: tuple[Scope, ...] = ()
    current_calls: tuple[int, ...] = ()
    boundary = -1
    line_starts = _line_starts(tokens)

    def refresh_calls() -> tuple[int, ...]:
        return tuple(entry.call_id for entry in stack if entry.call_id is not None)

    for index, token in enumerate(tokens):
        text = token.text

        if token.kind == "punct" and text in _CLOSERS:
            opener = _pop_matching(stack, _CLOSERS[text])
            if opener is not None:
                if opener.char == "{":
                    if scope_stack:
                        scope_stack.pop()
                        current_scopes = tuple(scope_stack)
                    boundary = opener.saved_boundary
                current_calls = refresh_calls()
            scopes_out.append(current_scopes)
            calls_out.append(current_calls)
            if text == "}" and (not stack or stack[-1].char == "{"):
                boundary = index
            _mark_operand(stack)
            continue

        scopes_out.append(current_scopes)
        calls_out.append(current_calls)

        if token.kind == "punct" and text == "{":
            scope_stack.append(_scope_for_brace(tokens, index, boundary, line_starts))
            current_scopes = tuple(scope_stack)
            stack.append(_Open("{", saved_boundary=boundary))
            boundary = index
            continue

        if token.kind == "punct" and text == "(":
            call = _call_for_paren(tokens, index)
            entry = _Open("(")
            if call is not None:
                entry.call_id = len(raw_calls)
                raw_calls.append((call[0], call[1], token.line))
                call_labels.append(entry.labels)
            stack.append(entry)
            current_calls = refresh_calls()
            continue

        if token.kind == "punct" and text == "[":
            stack.append(_Open("["))
            continue

        if token.kind == "punct" and text == ";":
            boundary = index

        top = stack[-1] if stack else None
        if top is not None and top.char == "[" and top.call_id is None and token.kind == "ident":
            if top.operand:
                # Objective-C message send: [receiver selector:...]
                receiver = tokens[index - 1].text if index > 0 else ""
                qualified = f"{receiver}.{text}" if tokens[index - 1].kind == "ident" else text
                top.call_id = len(raw_calls)
                raw_calls.append((text, qualified, token.line))
                call_labels.append(top.labels)
                current_calls = refresh_calls()

        if (
            top is not None
            and top.char in "(["
            and token.kind == "ident"
            and index + 1 < len(tokens)
            and tokens[index + 1].text == ":"
        ):
            top.labels.append(text)

        if token.kind in ("ident", "number", "string"):
            _mark_operand(stack)
        elif stack:
            stack[-1].operand = False

    call_sites = [
        CallSite(name=name, qualified=qualified, line=line, labels=tuple(labels))
        for (name, qualified, line), labels in zip(raw_calls, call_labels)
    ]
    return (scopes_out, calls_out, call_sites)


def _mark_operand(stack: list[_Open]) -> None:
    if stack:
        stack[-1].operand = True


def _pop_matching(stack: list[_Open], char: str) -> _Open | None:
    # Unbalanced closers are ignored rather than unwinding unrelated scopes.
    for position in range(len(stack) - 1, -1, -1):
        if stack[position].char == char:
            opener = stack[position]
            del stack[position:]
            return opener
    return None


def _line_starts(tokens: list[Token]) -> dict[int, int]:
    starts: dict[int, int] = {}
    for index, token in enumerate(tokens):
        starts.setdefault(token.line, index)
    return starts


def _statement_window(
    tokens: list[Token], brace: int, boundary: int, line_starts: dict[int, int]
) -> int:
    """First token index of the statement that the brace at ``brace`` belongs to."""
    start = line_starts[tokens[brace].line]
    if start == brace and start - 1 > boundary:
        start = line_starts[tokens[start - 1].line]
    while start - 1 > boundary and (
        tokens[start].text in CONTINUATION_START or tokens[start - 1].text in CONTINUATION_END
    ):
        start = line_starts[tokens[start - 1].line]
    return max(start, boundary + 1)


def _scope_for_brace(
    tokens: list[Token], brace: int, boundary: int, line_starts: dict[int, int]
) -> Scope:
    start = _statement_window(tokens, brace, boundary, line_starts)
    depth = 0
    # The first keyword of the statement decides: `if let x {` is an `if` block.
    for position in range(start, brace):
        token = tokens[position]
        if token.text in ("(", "["):
            depth += 1
            continue
        if token.text in (")", "]"):
            depth = max(0, depth - 1)
            continue
        if depth or token.kind != "ident":
            continue
        if token.text in DECLARATION_KEYWORDS:
            return Scope(name=_declared_name(tokens, position, brace), keyword=token.text)
        if token.text in CONTROL_KEYWORDS:
            return Scope(name=token.text, keyword=token.text)

    previous = _previous_operand(tokens, brace, start)
    if previous is not None:
        return Scope(name=previous)
    return Scope(name=CLOSURE_NAME if brace > start else BLOCK_NAME)


def _declared_name(tokens: list[Token], keyword_index: int, limit: int) -> str:
    keyword = tokens[keyword_index].text
    if keyword in SELF_NAMED_KEYWORDS:
        return keyword
    for position in range(keyword_index + 1, limit):
        token = tokens[position]
        if token.kind == "ident" and token.text not in DECLARATION_KEYWORDS:
            return token.text.strip("`")
    return keyword


def _previous_operand(tokens: list[Token], brace: int, start: int) -> str | None:
    position = brace - 1
    while position >= start:
        token = tokens[position]
        if token.text in (")", "]"):
            position = _skip_group_backwards(tokens, position, start)
            continue
        if token.kind == "ident":
            return token.text
        return None
    return None


def _skip_group_backwards(tokens: list[Token], close: int, start: int) -> int:
    opener = "(" if tokens[close].text == ")" else "["
    closer = tokens[close].text
    depth = 0
    position = close
    while position >= start:
        text = tokens[position].text
        if text == closer:
            depth += 1
        elif text == opener:
            depth -= 1
            if depth == 0:
                return position - 1
        position -= 1
    return start - 1


def _call_for_paren(tokens: list[Token], paren: int) -> tuple[str, str] | None:
    """Return (name, qualified name) when the paren opens a call."""
    if paren == 0:
        return None
    callee = tokens[paren - 1]
    if callee.kind != "ident":
        return None
    explicit_init = callee.text == "init" and paren >= 2 and tokens[paren - 2].text == "."
    if callee.text in NOT_CALLABLE and not explicit_init:
        return None
    if paren >= 2 and tokens[paren - 2].text in ("func", "fun", "function"):
        return None

    parts = [callee.text]
    position = paren - 2
    while position >= 0 and tokens[position].text == ".":
        before = tokens[position - 1] if position >= 1 else None
        if before is not None and before.kind == "ident" and before.text not in NOT_CALLABLE:
            parts.append(before.text)
            position -= 2
            continue
        parts.append("")
        break
    return (callee.text, ".".join(reversed(parts)))
