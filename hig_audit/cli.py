"""CLI entrypoint for hig-audit."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from hig_audit import __version__
from hig_audit.config import AppConfig, default_config_template, load_app_config
from hig_audit.corpus import Corpus, Severity, load_corpus
from hig_audit.engine import EngineOptions, run_audit
from hig_audit.errors import HigAuditError
from hig_audit.indexer import IndexOptions
from hig_audit.log import configure_logging
from hig_audit.output import render_json, render_text
from hig_audit.weighting import ProjectProfile, build_profile

app = typer.Typer(
    name="hig-audit",
    no_args_is_help=True,
    help="Audit UI source code against interface guideline rules.",
)

FORMAT_CHOICES = {"text", "json"}


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
) -> None:
    """Root command callback."""
    _ = version


@app.command("audit")
def audit_command(
    path: Annotated[Path, typer.Argument(help="Source file or directory to audit.")] = Path("."),
    profile: Annotated[
        str | None,
        typer.Option(
            help="Project category (productivity, media, game, ...).", show_default="general"
        ),
    ] = None,
    platforms: Annotated[
        str | None, typer.Option(help="Comma-separated target platforms (default: all).")
    ] = None,
    format: Annotated[
        str | None, typer.Option(help="Output format: text|json.", show_default="text")
    ] = None,
    fail_on: Annotated[
        str | None,
        typer.Option(
            "--fail-on",
            help="Exit 1 when a visible finding is at or above this severity: "
            "critical|important|context_dependent|minor.",
        ),
    ] = None,
    rules_file: Annotated[
        Path | None, typer.Option("--rules", help="Path to a rule corpus TOML file.")
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
    show_suppressed: Annotated[
        bool, typer.Option("--show-suppressed", help="Include suppressed findings in output.")
    ] = False,
    jobs: Annotated[
        int | None, typer.Option(help="Worker threads (0 = CPU count).", min=0)
    ] = None,
    cache: Annotated[
        bool | None,
        typer.Option("--cache/--no-cache", help="Reuse per-file results for unchanged files."),
    ] = None,
    budget_seconds: Annotated[
        float | None,
        typer.Option("--budget-seconds", help="Stop scanning new files after this many seconds."),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
    log_json: Annotated[
        bool, typer.Option("--log-json", help="Emit stderr log records as JSON lines.")
    ] = False,
) -> None:
    """Audit a source tree and report findings per perspective."""
    configure_logging(verbose=verbose, json_format=log_json)
    app_config = _load_config_or_raise(path, config_file)

    output_format = (format or app_config.format).lower()
    if output_format not in FORMAT_CHOICES:
        raise typer.BadParameter("format must be one of: json, text", param_hint="--format")

    threshold = _threshold_or_raise(fail_on) if fail_on is not None else app_config.fail_on
    project_profile = _profile_or_raise(
        category=profile or app_config.profile.category,
        platforms=_split_csv(platforms) if platforms is not None else app_config.profile.platforms,
        weights=app_config.profile.weights,
    )
    corpus = _configured_corpus_or_exit(path, app_config, rules_file)

    if budget_seconds is not None and budget_seconds <= 0:
        raise typer.BadParameter("must be > 0", param_hint="--budget-seconds")
    engine = app_config.engine
    use_cache = cache if cache is not None else engine.cache
    options = EngineOptions(
        index=IndexOptions(
            extensions=tuple(app_config.extensions),
            include=list(app_config.include),
            exclude=list(app_config.exclude),
            read_timeout_seconds=engine.read_timeout_seconds,
        ),
        jobs=jobs if jobs is not None else engine.jobs,
        budget_seconds=budget_seconds if budget_seconds is not None else engine.budget_seconds,
        cache_dir=_base_dir(path) / engine.cache_dir if use_cache else None,
    )

    try:
        report = run_audit(path, corpus=corpus, profile=project_profile, options=options)
    except HigAuditError as exc:
        _fail(exc)

    for warning in report.warnings:
        typer.echo(f"warning: {warning.path}: {warning.reason}", err=True)

    if output_format == "json":
        typer.echo(render_json(report, show_suppressed=show_suppressed))
    else:
        typer.echo(render_text(report, show_suppressed=show_suppressed))

    if threshold is not None and report.exceeds(threshold):
        raise typer.Exit(code=1)


@app.command("rules")
def rules_command(
    root: Annotated[Path, typer.Option(help="Project root used to find config.")] = Path("."),
    rules_file: Annotated[
        Path | None, typer.Option("--rules", help="Path to a rule corpus TOML file.")
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: text|json.")] = "text",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """List corpus rules and whether the config enables them."""
    output_format = format.lower()
    if output_format not in FORMAT_CHOICES:
        raise typer.BadParameter("format must be one of: json, text", param_hint="--format")

    app_config = _load_config_or_raise(root, config_file)
    full_corpus = _load_corpus_or_exit(_corpus_path(root, app_config, rules_file))
    active_ids = {rule.id for rule in _select_rules_or_raise(full_corpus, app_config).rules}

    if output_format == "json":
        payload = {
            "rules": [
                {
                    "rule_id": rule.id,
                    "severity": rule.severity.value,
                    "perspectives": [item.value for item in rule.perspectives],
                    "platforms": sorted(rule.platforms),
                    "accessibility": rule.accessibility,
                    "description": rule.description,
                    "enabled": rule.id in active_ids,
                }
                for rule in full_corpus.rules
            ],
            "meta": {
                "config_source": app_config.source,
                "corpus_source": full_corpus.source,
                "corpus_version": full_corpus.version,
            },
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [f"Rules ({full_corpus.source}, version {full_corpus.version}):"]
    for rule in full_corpus.rules:
        status = "enabled" if rule.id in active_ids else "disabled"
        platforms = ", ".join(sorted(rule.platforms)) or "all platforms"
        perspectives = ", ".join(item.value for item in rule.perspectives)
        lines.append(
            f"- {rule.id} [{status}] {rule.severity.label} ({perspectives}; {platforms})"
        )
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    root: Annotated[Path, typer.Option(help="Project root used to find config.")] = Path("."),
    format: Annotated[str, typer.Option(help="Output format: text|json.")] = "text",
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config TOML file."),
    ] = None,
) -> None:
    """Show resolved configuration."""
    output_format = format.lower()
    if output_format not in FORMAT_CHOICES:
        raise typer.BadParameter("format must be one of: json, text", param_hint="--format")

    app_config = _load_config_or_raise(root, config_file)
    corpus = _configured_corpus_or_exit(root, app_config, None)
    payload = app_config.to_dict()
    payload["active_rule_ids"] = [rule.id for rule in corpus.rules]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- fail_on: {payload['fail_on']}",
        f"- extensions: {payload['extensions']}",
        f"- include: {payload['include']}",
        f"- exclude: {payload['exclude']}",
        f"- corpus: {payload['corpus'] or 'built-in'}",
        f"- profile: {payload['profile']}",
        f"- engine: {payload['engine']}",
        f"- rules.enable: {payload['rules']['enable']}",
        f"- rules.disable: {payload['rules']['disable']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".hig-audit.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter project config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    root: Annotated[Path, typer.Option(help="Project root used to find config.")] = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".hig-audit.toml"),
    format: Annotated[str, typer.Option(help="Output format: text|json.")] = "text",
) -> None:
    """Validate a config file together with the corpus it selects."""
    output_format = format.lower()
    if output_format not in FORMAT_CHOICES:
        raise typer.BadParameter("format must be one of: json, text", param_hint="--format")

    app_config = _load_config_or_raise(root, config_file)
    _profile_or_raise(
        category=app_config.profile.category,
        platforms=app_config.profile.platforms,
        weights=app_config.profile.weights,
    )
    corpus = _configured_corpus_or_exit(root, app_config, None)
    payload = {
        "ok": True,
        "source": app_config.source,
        "corpus_version": corpus.version,
        "active_rule_ids": [rule.id for rule in corpus.rules],
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                "Config is valid.",
                f"- source: {payload['source']}",
                f"- corpus_version: {payload['corpus_version']}",
                f"- active_rule_ids: {payload['active_rule_ids']}",
            ]
        )
    )


def main() -> None:
    """Console script entrypoint."""
    app()


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=2) from exc


def _base_dir(path: Path) -> Path:
    resolved = path.resolve()
    return resolved.parent if resolved.is_file() else resolved


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_config_or_raise(root: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(root, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _threshold_or_raise(value: str) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--fail-on") from exc


def _profile_or_raise(
    *, category: str, platforms: list[str], weights: dict[str, float]
) -> ProjectProfile:
    try:
        return build_profile(category, platforms, weights)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--profile/--platforms") from exc


def _corpus_path(root: Path, app_config: AppConfig, rules_file: Path | None) -> Path | None:
    if rules_file is not None:
        return rules_file
    if app_config.corpus is None:
        return None
    configured = Path(app_config.corpus)
    return configured if configured.is_absolute() else _base_dir(root) / configured


def _load_corpus_or_exit(path: Path | None) -> Corpus:
    try:
        return load_corpus(path)
    except HigAuditError as exc:
        _fail(exc)


def _select_rules_or_raise(corpus: Corpus, app_config: AppConfig) -> Corpus:
    try:
        return corpus.select(
            enabled_rule_ids=app_config.rule_enable,
            disabled_rule_ids=app_config.rule_disable,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.rules") from exc


def _configured_corpus_or_exit(
    root: Path, app_config: AppConfig, rules_file: Path | None
) -> Corpus:
    corpus = _load_corpus_or_exit(_corpus_path(root, app_config, rules_file))
    return _select_rules_or_raise(corpus, app_config)
