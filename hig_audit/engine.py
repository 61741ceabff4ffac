"""Audit orchestration: worker pool, cancellation and the report pipeline."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from hig_audit.cache import ResultCache
from hig_audit.classifier import classify
from hig_audit.corpus import Corpus, corpus_cache_key
from hig_audit.errors import SourceIndexError
from hig_audit.indexer import (
    IndexOptions,
    IndexWarning,
    SourceFile,
    SourceUnit,
    build_unit,
    discover_files,
    load_source,
)
from hig_audit.matcher import Finding, match
from hig_audit.report import Report, aggregate
from hig_audit.suppressions import Directive
from hig_audit.weighting import ProjectProfile, weight

logger = logging.getLogger(__name__)


class CancelToken:
    """Run-level cooperative cancellation, checked between files."""

    def __init__(self, deadline: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_budget(cls, budget_seconds: float | None) -> CancelToken:
        if budget_seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + budget_seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None:
            if time.monotonic() >= self._deadline:
                logger.warning("Time budget exhausted; remaining files will be skipped")
                self._event.set()
        return self._event.is_set()


@dataclass(slots=True)
class EngineOptions:
    """Runtime knobs for a run."""

    index: IndexOptions = field(default_factory=IndexOptions)
    jobs: int = 0
    budget_seconds: float | None = None
    cache_dir: Path | None = None

    def worker_count(self, file_count: int) -> int:
        limit = self.jobs if self.jobs > 0 else (os.cpu_count() or 1)
        return max(1, min(limit, file_count))


class _Collector:
    """Thread-safe sink for per-file results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.findings: list[Finding] = []
        self.directives: dict[str, list[Directive]] = {}
        self.warnings: list[IndexWarning] = []
        self.scanned = 0
        self.skipped = 0

    def add(self, path: str, findings: list[Finding], directives: list[Directive]) -> None:
        with self._lock:
            self.findings.extend(findings)
            self.directives[path] = directives
            self.scanned += 1

    def warn(self, warning: IndexWarning) -> None:
        with self._lock:
            self.warnings.append(warning)

    def skip(self) -> None:
        with self._lock:
            self.skipped += 1


def run_audit(
    root: Path,
    *,
    corpus: Corpus,
    profile: ProjectProfile | None = None,
    options: EngineOptions | None = None,
    cancel: CancelToken | None = None,
) -> Report:
    """Audit every matching file under ``root`` and build the report.

    Raises ``EngineError`` when the root cannot be walked. Per-file failures
    become warnings on the report.
    """
    effective = options or EngineOptions()
    token = cancel or CancelToken.with_budget(effective.budget_seconds)
    files, discovery_warnings = discover_files(root, effective.index)
    cache = (
        ResultCache(effective.cache_dir, corpus_cache_key(corpus))
        if effective.cache_dir is not None
        else None
    )

    collector = _Collector()
    for warning in discovery_warnings:
        collector.warn(warning)

    started = time.perf_counter()
    workers = effective.worker_count(len(files))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hig-audit") as pool:
        futures = [
            pool.submit(_process_file, source, corpus, effective.index, cache, collector, token)
            for source in files
        ]
        for future in futures:
            future.result()

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        f"Scanned {collector.scanned} files ({collector.skipped} skipped, "
        f"{len(collector.warnings)} warnings) with {workers} workers in {elapsed_ms}ms"
    )
    return build_report(
        collector.findings,
        collector.directives,
        corpus=corpus,
        profile=profile or ProjectProfile(),
        warnings=collector.warnings,
        files_scanned=collector.scanned,
        truncated=collector.skipped > 0,
    )


def audit_units(
    units: list[SourceUnit],
    *,
    corpus: Corpus,
    profile: ProjectProfile | None = None,
    warnings: list[IndexWarning] | None = None,
) -> Report:
    """Run matching and the report pipeline over already indexed units."""
    findings: list[Finding] = []
    directives: dict[str, list[Directive]] = {}
    for unit in units:
        findings.extend(match(unit, corpus.rules))
        directives[unit.path] = unit.directives
    return build_report(
        findings,
        directives,
        corpus=corpus,
        profile=profile or ProjectProfile(),
        warnings=warnings or [],
        files_scanned=len(units),
        truncated=False,
    )


def audit_text(
    text: str,
    *,
    path: str,
    corpus: Corpus,
    profile: ProjectProfile | None = None,
) -> Report:
    """Audit a single in-memory source text."""
    return audit_units([build_unit(path, text)], corpus=corpus, profile=profile)


def build_report(
    findings: list[Finding],
    directives: dict[str, list[Directive]],
    *,
    corpus: Corpus,
    profile: ProjectProfile,
    warnings: list[IndexWarning],
    files_scanned: int,
    truncated: bool,
) -> Report:
    """Classifier, weighter and aggregator over the whole finding set."""
    ordered = sorted(findings, key=lambda item: item.sort_key)
    classified = classify(ordered, directives, corpus=corpus)
    rules = corpus.by_id()
    weighted = weight(classified.visible, profile, rules)
    suppressed = [
        finding
        for finding in classified.suppressed
        if rules[finding.rule_id].applies_to_platforms(profile.platforms)
    ]
    return aggregate(
        weighted,
        suppressed=suppressed,
        overrides=classified.overrides,
        warnings=warnings,
        profile=profile,
        corpus_version=corpus.version,
        files_scanned=files_scanned,
        truncated=truncated,
    )


def _process_file(
    source: SourceFile,
    corpus: Corpus,
    options: IndexOptions,
    cache: ResultCache | None,
    collector: _Collector,
    token: CancelToken,
) -> None:
    if token.cancelled:
        collector.skip()
        return

    try:
        loaded = load_source(source, options)
    except SourceIndexError as exc:
        logger.debug(f"Skipping {exc.path}: {exc.reason}")
        collector.warn(IndexWarning(path=exc.path, reason=exc.reason))
        return

    if cache is not None:
        cached = cache.get(loaded.content_hash, loaded.path)
        if cached is not None:
            collector.add(loaded.path, cached.findings, cached.directives)
            return

    unit = build_unit(loaded.path, loaded.text, content_hash=loaded.content_hash)
    findings = match(unit, corpus.rules)
    if cache is not None:
        cache.put(loaded.content_hash, findings, unit.directives)
    collector.add(unit.path, findings, unit.directives)
