"""CLI tests for the audit, rules and config commands."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from hig_audit import __version__
from hig_audit.cli import app

runner = CliRunner()


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "audit" in result.stdout
    assert "rules" in result.stdout
    assert "config-init" in result.stdout
    assert "config-validate" in result.stdout


def test_audit_help_lists_options() -> None:
    result = runner.invoke(app, ["audit", "--help"])
    assert result.exit_code == 0
    assert "--profile" in result.stdout
    assert "--platforms" in result.stdout
    assert "--fail-on" in result.stdout


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


def test_fail_on_critical_exits_one(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)

    result = runner.invoke(app, ["audit", str(tmp_path), "--fail-on", "critical"])

    assert result.exit_code == 1
    assert "Welcome.swift:3 fixed-font-size" in result.stdout
    assert "Clarity (weight 1.00): 1 issues found" in result.stdout


def test_findings_without_threshold_exit_zero(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)

    result = runner.invoke(app, ["audit", str(tmp_path)])

    assert result.exit_code == 0
    assert "1 findings in 1 files" in result.stdout


def test_threshold_above_all_findings_exits_zero(tmp_path: Path) -> None:
    _write(tmp_path / "Caption.swift", _SINGLE_LINE)

    result = runner.invoke(
        app, ["audit", str(tmp_path), "--fail-on", "important", "--format", "json"]
    )

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["summary"]["context_dependent"] == 1
    assert payload["summary"]["total"] == 1


def test_threshold_from_config_file(tmp_path: Path) -> None:
    _write(tmp_path / "Caption.swift", _SINGLE_LINE)
    _write(tmp_path / ".hig-audit.toml", 'fail_on = "context-dependent"\n')

    result = runner.invoke(app, ["audit", str(tmp_path)])

    assert result.exit_code == 1


def test_show_suppressed_lists_hidden_findings(tmp_path: Path) -> None:
    _write(tmp_path / "Splash.swift", _SUPPRESSED)

    hidden = runner.invoke(app, ["audit", str(tmp_path), "--fail-on", "minor"])
    shown = runner.invoke(app, ["audit", str(tmp_path), "--show-suppressed", "--format", "json"])

    assert hidden.exit_code == 0
    assert "fixed-font-size" not in hidden.stdout
    assert shown.exit_code == 0
    payload = json.loads(shown.stdout)
    assert [item["rule_id"] for item in payload["suppressed"]] == ["fixed-font-size"]


def test_platforms_option_filters_platform_rules(tmp_path: Path) -> None:
    _write(tmp_path / "Gallery.swift", _WATCH_SCROLL)

    ios = runner.invoke(app, ["audit", str(tmp_path), "--platforms", "ios", "--format", "json"])
    watch = runner.invoke(
        app, ["audit", str(tmp_path), "--platforms", "watchOS", "--format", "json"]
    )

    assert ios.exit_code == 0
    assert "watch-horizontal-scroll" not in ios.stdout
    assert json.loads(ios.stdout)["meta"]["profile"]["platforms"] == ["ios"]
    assert watch.exit_code == 0
    assert "watch-horizontal-scroll" in watch.stdout


def test_unreadable_file_is_reported_on_stderr(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)
    (tmp_path / "Broken.swift").write_bytes(b"\xff\xff")

    result = runner.invoke(app, ["audit", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    assert "warning: Broken.swift" in result.stderr
    assert result.stderr.count("Broken.swift") == 1
    payload = json.loads(result.stdout)
    assert payload["warnings"][0]["path"] == "Broken.swift"


def test_single_file_with_other_extension_is_not_scanned(tmp_path: Path) -> None:
    _write(tmp_path / "README.md", "Use .font(.system(size: 17)) sparingly.\n")

    result = runner.invoke(app, ["audit", str(tmp_path / "README.md"), "--fail-on", "minor"])

    assert result.exit_code == 0
    assert "0 findings in 0 files" in result.stdout
    assert "warning: README.md: extension '.md'" in result.stderr


def test_missing_rules_file_exits_two(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)

    result = runner.invoke(app, ["audit", str(tmp_path), "--rules", str(tmp_path / "none.toml")])

    assert result.exit_code == 2
    assert "error: Rule corpus does not exist" in result.stderr


def test_malformed_rules_file_exits_two(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)
    _write(
        tmp_path / "rules.toml",
        "\n".join(
            [
                "[[rules]]",
                'id = "broken"',
                'severity = "critical"',
                'perspectives = ["clarity"]',
                'message = "m"',
                'fix_hint = "f"',
                "[rules.pattern]",
                'kind = "regex"',
                'regex = "("',
                "",
            ]
        ),
    )

    result = runner.invoke(app, ["audit", str(tmp_path), "--rules", str(tmp_path / "rules.toml")])

    assert result.exit_code == 2
    assert "broken" in result.stderr


def test_bad_message_format_spec_exits_two_before_scanning(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)
    _write(
        tmp_path / "rules.toml",
        "\n".join(
            [
                "[[rules]]",
                'id = "fixed-size"',
                'severity = "critical"',
                'perspectives = ["clarity"]',
                'message = "Fixed size on line {line:s}"',
                'fix_hint = "f"',
                "[rules.pattern]",
                'kind = "shape"',
                'token = "number"',
                "",
            ]
        ),
    )

    result = runner.invoke(app, ["audit", str(tmp_path), "--rules", str(tmp_path / "rules.toml")])

    assert result.exit_code == 2
    assert "error: rule 'fixed-size': malformed message template" in result.stderr


def test_unknown_profile_and_threshold_are_usage_errors(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)

    bad_profile = runner.invoke(app, ["audit", str(tmp_path), "--profile", "spreadsheet"])
    bad_threshold = runner.invoke(app, ["audit", str(tmp_path), "--fail-on", "blocker"])
    bad_platform = runner.invoke(app, ["audit", str(tmp_path), "--platforms", "android"])

    assert bad_profile.exit_code == 2
    assert bad_threshold.exit_code == 2
    assert bad_platform.exit_code == 2


def test_missing_path_exits_two(tmp_path: Path) -> None:
    result = runner.invoke(app, ["audit", str(tmp_path / "missing")])

    assert result.exit_code == 2
    assert "error:" in result.stderr


def test_profile_changes_section_weights(tmp_path: Path) -> None:
    _write(tmp_path / "Welcome.swift", _FIXED_FONT)

    result = runner.invoke(app, ["audit", str(tmp_path), "--profile", "game", "--format", "json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["weights"] == {"clarity": 0.6, "consistency": 0.5, "deference": 1.0}
    assert payload["perspectives"]["clarity"][0]["score"] == 4.0


def test_config_init_then_validate(tmp_path: Path) -> None:
    out = tmp_path / ".hig-audit.toml"

    created = runner.invoke(app, ["config-init", "--out", str(out)])
    again = runner.invoke(app, ["config-init", "--out", str(out)])
    validated = runner.invoke(
        app, ["config-validate", "--root", str(tmp_path), "--format", "json"]
    )

    assert created.exit_code == 0
    assert out.exists()
    assert again.exit_code == 2
    assert validated.exit_code == 0
    payload = json.loads(validated.stdout)
    assert payload["ok"] is True
    assert "fixed-font-size" in payload["active_rule_ids"]


def test_config_validate_rejects_unknown_rule_ids(tmp_path: Path) -> None:
    _write(tmp_path / ".hig-audit.toml", '[rules]\ndisable = ["no-such-rule"]\n')

    result = runner.invoke(app, ["config-validate", "--root", str(tmp_path)])

    assert result.exit_code == 2


def test_rules_command_reports_disabled_rules(tmp_path: Path) -> None:
    _write(tmp_path / ".hig-audit.toml", '[rules]\ndisable = ["single-line-limit"]\n')

    result = runner.invoke(app, ["rules", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    enabled = {item["rule_id"]: item["enabled"] for item in payload["rules"]}
    assert enabled["single-line-limit"] is False
    assert enabled["fixed-font-size"] is True
    assert payload["meta"]["config_source"].endswith(".hig-audit.toml")


def test_config_command_shows_resolved_values(tmp_path: Path) -> None:
    _write(tmp_path / ".hig-audit.toml", '[profile]\ncategory = "media"\n')

    result = runner.invoke(app, ["config", "--root", str(tmp_path), "--format", "json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["profile"]["category"] == "media"
    assert payload["fail_on"] is None


def test_disabled_rule_does_not_fire(tmp_path: Path) -> None:
    _write(tmp_path / "Caption.swift", _SINGLE_LINE)
    _write(tmp_path / ".hig-audit.toml", '[rules]\ndisable = ["single-line-limit"]\n')

    result = runner.invoke(app, ["audit", str(tmp_path), "--fail-on", "minor"])

    assert result.exit_code == 0
    assert "single-line-limit" not in result.stdout


_FIXED_FONT = "\n".join(
    [
        "var body: some View {",
        '    Text("Welcome")',
        "        .font(.system(size: 17))",
        "}",
        "",
    ]
)

_SINGLE_LINE = "\n".join(
    [
        "var body: some View {",
        '    Text("Caption").lineLimit(1)',
        "}",
        "",
    ]
)

_SUPPRESSED = "\n".join(
    [
        "var body: some View {",
        '    Text("Hello")',
        "        // hig-audit: allow fixed-font-size -- brand artwork",
        "        .font(.system(size: 40))",
        "}",
        "",
    ]
)

_WATCH_SCROLL = "\n".join(
    [
        "var body: some View {",
        "    ScrollView(.horizontal) {",
        '        Text("Photos")',
        "    }",
        "}",
        "",
    ]
)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
