"""On-disk result cache keyed by file content hash and corpus version.

Unchanged files skip tokenizing and matching on incremental re-runs.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from hig_audit.matcher import Finding
from hig_audit.suppressions import Directive

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = ".hig-audit-cache"
_FORMAT = 1


@dataclass(frozen=True, slots=True)
class CachedResult:
    """Raw findings and directives previously computed for one file."""

    findings: list[Finding]
    directives: list[Directive]


class ResultCache:
    """JSON-file cache, one entry per (corpus, content) pair."""

    def __init__(self, directory: Path, corpus_key: str) -> None:
        self.directory = directory
        self._corpus_key = corpus_key

    def entry_path(self, content_hash: str) -> Path:
        digest = hashlib.sha256(f"{self._corpus_key}:{content_hash}".encode()).hexdigest()
        return self.directory / digest[:2] / f"{digest}.json"

    def get(self, content_hash: str, path: str) -> CachedResult | None:
        """Return the cached result for ``content_hash``, re-attached to ``path``."""
        entry = self.entry_path(content_hash)
        if not entry.is_file():
            return None
        try:
            payload = json.loads(entry.read_text(encoding="utf-8"))
            if payload.get("format") != _FORMAT:
                return None
            findings = [Finding.from_dict(item, path=path) for item in payload["findings"]]
            directives = [Directive.from_dict(item) for item in payload["directives"]]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug(f"Ignoring unusable cache entry {entry}: {exc}")
            return None
        logger.debug(f"Cache hit for {path}")
        return CachedResult(findings=findings, directives=directives)

    def put(self, content_hash: str, findings: list[Finding], directives: list[Directive]) -> None:
        entry = self.entry_path(content_hash)
        payload = {
            "format": _FORMAT,
            "findings": [finding.to_dict() for finding in findings],
            "directives": [directive.to_dict() for directive in directives],
        }
        try:
            entry.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=entry.parent, suffix=".tmp", delete=False
            ) as handle:
                json.dump(payload, handle, sort_keys=True)
                temp_name = handle.name
            os.replace(temp_name, entry)
        except OSError as exc:
            logger.warning(f"Could not write cache entry {entry}: {exc}")
