"""Error taxonomy for the audit engine."""

from __future__ import annotations


class HigAuditError(Exception):
    """Base class for engine-level failures."""


class EngineError(HigAuditError):
    """Raised when a run cannot start (missing corpus, unreadable root)."""


class RuleCompileError(HigAuditError):
    """Raised at corpus load time when a rule record cannot be compiled."""

    def __init__(self, message: str, *, rule_id: str | None = None) -> None:
        self.rule_id = rule_id
        prefix = f"rule '{rule_id}': " if rule_id else ""
        super().__init__(f"{prefix}{message}")


class SourceIndexError(HigAuditError):
    """Raised when a single source file cannot be indexed.

    Never fatal to a run: the engine records it as a warning and moves on.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
