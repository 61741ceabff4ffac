"""Configuration loading for hig-audit."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hig_audit.cache import DEFAULT_CACHE_DIR
from hig_audit.corpus import KNOWN_PLATFORMS, Severity
from hig_audit.indexer import DEFAULT_EXTENSIONS, DEFAULT_READ_TIMEOUT_SECONDS
from hig_audit.weighting import CATEGORY_WEIGHTS, DEFAULT_CATEGORY

CONFIG_FILENAMES = (".hig-audit.toml", "hig-audit.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("hig_audit", "hig-audit")
FORMAT_CHOICES = {"text", "json"}


@dataclass(slots=True)
class ProfileSection:
    """Project category, target platforms and perspective weight overrides."""

    category: str = DEFAULT_CATEGORY
    platforms: list[str] = field(default_factory=list)
    weights: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "platforms": list(self.platforms),
            "weights": dict(self.weights),
        }


@dataclass(slots=True)
class EngineConfig:
    """Worker pool, read timeout, time budget and cache controls."""

    jobs: int = 0
    read_timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS
    budget_seconds: float | None = None
    cache: bool = False
    cache_dir: str = DEFAULT_CACHE_DIR

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": self.jobs,
            "read_timeout_seconds": self.read_timeout_seconds,
            "budget_seconds": self.budget_seconds,
            "cache": self.cache,
            "cache_dir": self.cache_dir,
        }


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "text"
    fail_on: Severity | None = None
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    corpus: str | None = None
    rule_enable: list[str] | None = None
    rule_disable: list[str] = field(default_factory=list)
    profile: ProfileSection = field(default_factory=ProfileSection)
    engine: EngineConfig = field(default_factory=EngineConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "fail_on": self.fail_on.value if self.fail_on is not None else None,
            "extensions": list(self.extensions),
            "include": list(self.include),
            "exclude": list(self.exclude),
            "corpus": self.corpus,
            "rules": {
                "enable": list(self.rule_enable) if self.rule_enable is not None else None,
                "disable": list(self.rule_disable),
            },
            "profile": self.profile.to_dict(),
            "engine": self.engine.to_dict(),
            "source": self.source,
        }


def load_app_config(root: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or root-local files with precedence."""
    base = root.resolve()
    if base.is_file():
        base = base.parent
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (base / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = base / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = base / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template to customize."""
    return "\n".join(
        [
            'format = "text"',
            'fail_on = "important"',
            'extensions = [".swift", ".m", ".mm", ".h"]',
            'include = ["Sources/**"]',
            'exclude = ["**/Generated/**", "**/*Tests.swift"]',
            '# corpus = "design/hig-rules.toml"',
            "",
            "[profile]",
            'category = "productivity"',
            'platforms = ["ios", "ipados"]',
            "",
            "[profile.weights]",
            "# deference = 0.4",
            "",
            "[rules]",
            '# enable = ["fixed-font-size", "hardcoded-hex-color"]',
            "disable = []",
            "",
            "[engine]",
            "jobs = 0",
            "read_timeout_seconds = 5.0",
            "# budget_seconds = 60",
            "cache = true",
            f'cache_dir = "{DEFAULT_CACHE_DIR}"',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ValueError(f"Cannot read config {path}: {exc.strerror or exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    rules_mapping = _as_table(mapping.get("rules"), "rules")
    profile_mapping = _as_table(mapping.get("profile"), "profile")
    engine_mapping = _as_table(mapping.get("engine"), "engine")

    raw_fail = mapping.get("fail_on")
    fail_value = None if raw_fail is None else _as_severity(raw_fail, "fail_on")

    extensions = _as_str_list(mapping.get("extensions"), "extensions")
    for extension in extensions:
        if not extension.startswith("."):
            raise ValueError(f"extensions entries must start with '.', got '{extension}'")

    raw_corpus = mapping.get("corpus")
    return AppConfig(
        format=_as_choice(mapping.get("format", "text"), FORMAT_CHOICES, "format"),
        fail_on=fail_value,
        extensions=extensions or list(DEFAULT_EXTENSIONS),
        include=_as_str_list(mapping.get("include"), "include"),
        exclude=_as_str_list(mapping.get("exclude"), "exclude"),
        corpus=None if raw_corpus is None else _as_str(raw_corpus, "corpus"),
        rule_enable=_as_str_list_or_none(rules_mapping.get("enable"), "rules.enable"),
        rule_disable=_as_str_list(rules_mapping.get("disable"), "rules.disable"),
        profile=_parse_profile_section(profile_mapping),
        engine=_parse_engine_config(engine_mapping),
        source=source,
    )


def _parse_profile_section(value: dict[str, Any]) -> ProfileSection:
    weights = _as_float_mapping(value.get("weights"), "profile.weights")
    for name, weight in weights.items():
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"profile.weights.{name} must be within [0, 1]")
    platforms = [item.lower() for item in _as_str_list(value.get("platforms"), "profile.platforms")]
    for platform in platforms:
        if platform not in KNOWN_PLATFORMS:
            choices = ", ".join(KNOWN_PLATFORMS)
            raise ValueError(f"profile.platforms entries must be one of: {choices}")
    return ProfileSection(
        category=_as_choice(
            value.get("category", DEFAULT_CATEGORY),
            set(CATEGORY_WEIGHTS),
            "profile.category",
        ),
        platforms=platforms,
        weights=weights,
    )


def _parse_engine_config(value: dict[str, Any]) -> EngineConfig:
    jobs = _as_int(value.get("jobs", 0), "engine.jobs")
    if jobs < 0:
        raise ValueError("engine.jobs must be >= 0")
    read_timeout = _as_float(
        value.get("read_timeout_seconds", DEFAULT_READ_TIMEOUT_SECONDS),
        "engine.read_timeout_seconds",
    )
    if read_timeout <= 0:
        raise ValueError("engine.read_timeout_seconds must be > 0")
    raw_budget = value.get("budget_seconds")
    budget = None if raw_budget is None else _as_float(raw_budget, "engine.budget_seconds")
    if budget is not None and budget <= 0:
        raise ValueError("engine.budget_seconds must be > 0")
    return EngineConfig(
        jobs=jobs,
        read_timeout_seconds=read_timeout,
        budget_seconds=budget,
        cache=_as_bool(value.get("cache", False), "engine.cache"),
        cache_dir=_as_str(value.get("cache_dir", DEFAULT_CACHE_DIR), "engine.cache_dir"),
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str_list_or_none(value: Any, field_name: str) -> list[str] | None:
    if value is None:
        return None
    return _as_str_list(value, field_name)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value


def _as_severity(raw: Any, field_name: str) -> Severity:
    try:
        return Severity.parse(_as_str(raw, field_name))
    except ValueError as exc:
        raise ValueError(f"{field_name}: {exc}") from exc


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return raw


def _as_float_mapping(value: Any, field_name: str) -> dict[str, float]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")

    parsed: dict[str, float] = {}
    for key, raw in value.items():
        if not isinstance(key, str):
            raise ValueError(f"{field_name} keys must be strings")
        parsed[key] = _as_float(raw, f"{field_name}.{key}")
    return parsed


def _as_float(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    return float(raw)
