"""Tokenizer tests."""

from __future__ import annotations

from hig_audit.lexer import tokenize


def test_tokenize_drops_comments_and_keeps_them_on_the_side() -> None:
    result = tokenize("let size = 17 // trailing note\n// own line\nlet other = 2\n")

    assert _texts(result) == ["let", "size", "=", "17", "let", "other", "=", "2"]
    assert [comment.text for comment in result.comments] == ["trailing note", "own line"]
    assert [comment.trailing for comment in result.comments] == [True, False]
    assert result.code_lines == {1, 3}


def test_tokenize_handles_nested_block_comments() -> None:
    result = tokenize("/* outer /* inner */ still outer */ value")

    assert _texts(result) == ["value"]
    assert result.comments[0].text == "outer /* inner */ still outer"


def test_tokenize_keeps_string_forms_as_single_tokens() -> None:
    source = "\n".join(
        [
            'let a = "plain \\(name("x")) text"',
            'let b = #"raw "quoted" text"#',
            'let c = """',
            "multi",
            'line"""',
            "let d = 'x'",
            'NSString *e = @"objc";',
        ]
    )
    result = tokenize(source)

    strings = [token for token in result.tokens if token.kind == "string"]
    assert [token.text for token in strings] == [
        '"plain \\(name("x")) text"',
        '#"raw "quoted" text"#',
        '"""\nmulti\nline"""',
        "'x'",
        '@"objc"',
    ]
    multiline = strings[2]
    assert (multiline.line, multiline.end_line) == (3, 5)


def test_tokenize_numbers_identifiers_and_operators() -> None:
    result = tokenize("@State var x = 0x1F + 1_000.5 -> y ..< z ?? #selector(tap) `default`")

    kinds = [(token.kind, token.text) for token in result.tokens]
    assert ("ident", "@State") in kinds
    assert ("number", "0x1F") in kinds
    assert ("number", "1_000.5") in kinds
    assert ("punct", "->") in kinds
    assert ("punct", "..<") in kinds
    assert ("punct", "??") in kinds
    assert ("ident", "#selector") in kinds
    assert ("ident", "`default`") in kinds


def test_tokenize_range_does_not_swallow_dots_into_numbers() -> None:
    result = tokenize("0..<10")

    assert _texts(result) == ["0", "..<", "10"]


def test_tokenize_tracks_line_and_column() -> None:
    result = tokenize("Text(\"Hi\")\n    .font(.body)")

    font = next(token for token in result.tokens if token.text == "font")
    assert (font.line, font.col) == (2, 6)


def _texts(result) -> list[str]:
    return [token.text for token in result.tokens]
