from __future__ import annotations

"""Configuration loading utilities for the snquery package."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
import os
import textwrap

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 fallback
    import tomli as tomllib  # type: ignore

__all__ = ["BuilderConfig", "load_config", "write_default_config", "DEFAULT_CONFIG_TOML"]

DEFAULT_CONFIG_TOML = textwrap.dedent(
    """
    [builder]
    use_advanced_date = true
    show_seconds = true
    allow_same_day = true
    max_visible_items = 15
    show_preview = false
    show_validation = false

    [reference]
    min_search_length = 2
    search_limit = 20
    search_timeout = 10.0
    search_debounce = 0.25

    [storage]
    saved_filters_path = "~/.snquery/saved_filters.json"

    [logging]
    level = "INFO"
    """
)


@dataclass(slots=True)
class BuilderConfig:
    """Runtime configuration threaded through the condition builder."""

    use_advanced_date: bool = True
    show_seconds: bool = True
    allow_same_day: bool = True
    max_visible_items: int = 15
    show_preview: bool = False
    show_validation: bool = False
    min_search_length: int = 2
    search_limit: int = 20
    search_timeout: float = 10.0
    search_debounce: float = 0.25
    saved_filters_path: str = "~/.snquery/saved_filters.json"
    log_level: str = "INFO"
    extra: dict[str, Any] = field(default_factory=dict)

    def saved_filters_file(self) -> Path:
        return Path(self.saved_filters_path).expanduser()


def load_config(config_path: str | Path | None = None) -> BuilderConfig:
    """Load configuration from a candidate list of paths.

    Resolution order:
        1. explicit ``config_path`` argument
        2. ``SNQUERY_CONFIG`` environment variable
        3. ``~/.config/snquery/config.toml``
        4. packaged default configuration
    """

    candidates: list[Path] = []
    if config_path:
        candidates.append(Path(config_path).expanduser())

    env_path = os.environ.get("SNQUERY_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser())

    candidates.append(Path.home() / ".config" / "snquery" / "config.toml")

    for candidate in candidates:
        if candidate.is_file():
            return _config_from_path(candidate)

    return _config_from_toml(DEFAULT_CONFIG_TOML)


def _config_from_path(path: Path) -> BuilderConfig:
    raw = path.read_text(encoding="utf-8")
    return _config_from_toml(raw)


def _config_from_toml(content: str) -> BuilderConfig:
    data = tomllib.loads(content)
    builder = data.get("builder", {})
    reference = data.get("reference", {})
    storage = data.get("storage", {})
    logging_section = data.get("logging", {})

    defaults = BuilderConfig()
    known = {"builder", "reference", "storage", "logging"}
    return BuilderConfig(
        use_advanced_date=bool(builder.get("use_advanced_date", defaults.use_advanced_date)),
        show_seconds=bool(builder.get("show_seconds", defaults.show_seconds)),
        allow_same_day=bool(builder.get("allow_same_day", defaults.allow_same_day)),
        max_visible_items=_positive_int(builder, "max_visible_items", defaults.max_visible_items),
        show_preview=bool(builder.get("show_preview", defaults.show_preview)),
        show_validation=bool(builder.get("show_validation", defaults.show_validation)),
        min_search_length=_positive_int(reference, "min_search_length", defaults.min_search_length),
        search_limit=_positive_int(reference, "search_limit", defaults.search_limit),
        search_timeout=float(reference.get("search_timeout", defaults.search_timeout)),
        search_debounce=float(reference.get("search_debounce", defaults.search_debounce)),
        saved_filters_path=str(storage.get("saved_filters_path", defaults.saved_filters_path)),
        log_level=str(logging_section.get("level", defaults.log_level)).upper(),
        extra={k: v for k, v in data.items() if k not in known},
    )


def _positive_int(section: Mapping[str, Any], key: str, fallback: int) -> int:
    value = section.get(key)
    if value is None:
        return fallback
    value = int(value)
    return value if value > 0 else fallback


def write_default_config(target_path: str | Path) -> Path:
    """Write the default configuration to ``target_path``.

    Creates parent directories if needed and returns the absolute path
    to the created file.
    """

    target = Path(target_path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
    return target.resolve()
