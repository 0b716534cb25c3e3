# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and helpers for githarvest runs.

This module defines declarative dataclasses for the output tree, git
access, filename patterns, the worker pool and logging, along with
helpers for serializing and loading configurations from JSON and TOML.
"""
from __future__ import annotations

import json
try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]
from collections.abc import Sequence as ABCSequence
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .log import PACKAGE_LOGGER_NAME, configure_logging
from .sharding import DEFAULT_SHARD_SIZE


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class OutputConfig:
    """Layout of the output tree.

    Attributes:
        root (Path): Directory holding ``temp/``, ``projects/``, ``data/``
            and ``stats/``.
        content_shard_size (int): Number of content bodies per ``data/``
            subdirectory.
        project_shard_size (int): Number of project records per
            ``projects/`` subdirectory.
        keep_temp (bool): Leave the ``temp/`` directory in place after the
            run. Individual clones are always removed.
    """
    root: Path = Path("harvest")
    content_shard_size: int = DEFAULT_SHARD_SIZE
    project_shard_size: int = DEFAULT_SHARD_SIZE
    keep_temp: bool = False


@dataclass(slots=True)
class GitConfig:
    """Settings for the git command-line client.

    timeout applies to every git call except clone, which uses
    clone_timeout. None disables the bound.
    """
    executable: str = "git"
    timeout: Optional[float] = 300.0
    clone_timeout: Optional[float] = 3600.0


@dataclass(slots=True)
class PatternConfig:
    """Filename patterns deciding which files are mined.

    Attributes:
        preset (str | None): Named base pattern list ("javascript",
            "everything") or None for an empty list.
        accept (list[str]): Extra accept globs appended to the preset.
        deny (list[str]): Extra deny globs appended to the preset.
    """
    preset: Optional[str] = "javascript"
    accept: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)


@dataclass(slots=True)
class PoolConfig:
    """
    Worker pool sizing.

    max_workers = 0 → one worker per CPU (os.cpu_count or 1). Each worker
    holds at most one clone on disk at a time, so this also bounds the
    temp space in use.
    """
    max_workers: int = 0


@dataclass(slots=True)
class LoggingConfig:
    """Controls the package logger; set propagate=True to integrate with
    host apps.
    """
    level: Union[int, str] = "INFO"
    propagate: bool = False
    fmt: Optional[str] = None
    logger_name: str = PACKAGE_LOGGER_NAME

    def apply(self) -> None:
        """Apply this logging configuration to the package logger."""
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name or PACKAGE_LOGGER_NAME,
        )


# ---------------------------------------------------------------------------
# Master config
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass(slots=True)
class HarvestConfig:
    """Declarative configuration of a githarvest run.

    Holds only serializable knobs. Runtime collaborators (the git client,
    the content store, the worker pool) are built by the ingestor.
    """
    output: OutputConfig = field(default_factory=OutputConfig)
    git: GitConfig = field(default_factory=GitConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate the configuration for internal consistency.

        Raises:
            ValueError: If a size, timeout or worker count is out of range.
        """
        if self.output.content_shard_size < 1:
            raise ValueError("output.content_shard_size must be at least 1.")
        if self.output.project_shard_size < 1:
            raise ValueError("output.project_shard_size must be at least 1.")
        if self.pool.max_workers < 0:
            raise ValueError("pool.max_workers must be >= 0 (0 means auto).")
        for name in ("timeout", "clone_timeout"):
            value = getattr(self.git, name)
            if value is not None and value <= 0:
                raise ValueError(f"git.{name} must be positive when set; got {value!r}.")
        if not self.git.executable:
            raise ValueError("git.executable must not be empty.")

    # -------------------------
    # Serialization helpers
    # -------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation of this configuration."""
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Serialize the configuration to JSON and write it to disk.

        Args:
            path (Path | str): Target file path.
            indent (int): Indentation level passed to ``json.dumps``.

        Returns:
            str: String path to the written file.
        """
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        """Instantiate a HarvestConfig from a mapping."""
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        """Load a configuration from a JSON file."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a HarvestConfig from a TOML file.

        The TOML layout mirrors this dataclass: tables [output], [git],
        [patterns], [pool] and [logging].
        """
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
        if not isinstance(data, Mapping):
            raise TypeError(f"Top-level TOML document must be a mapping; got {type(data).__name__}.")
        return cls.from_dict(data)


def load_config_from_path(path: str | Path) -> HarvestConfig:
    """Load a HarvestConfig from a JSON or TOML file.

    Raises:
        ValueError: If the file extension is not ``.toml`` or ``.json``.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        return HarvestConfig.from_toml(p)
    if suffix == ".json":
        return HarvestConfig.from_json(p)
    raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize dataclasses to JSON-friendly dicts, skipping None fields."""
    result: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        serialized = _serialize_value(value)
        if serialized is not None:
            result[f.name] = serialized
    return result


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items() if v is not None}
    if is_dataclass(value):
        return _dataclass_to_dict(value)
    return None


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Instantiate a dataclass of type ``cls`` from a mapping.

    Unknown keys raise so that typos in config files surface early.
    """
    if data is None:
        return cls()  # type: ignore[call-arg]
    type_hints = get_type_hints(cls)
    known = {f.name for f in fields(cls)}
    unknown = sorted(k for k in data if k not in known)
    if unknown:
        raise ValueError(
            f"Unsupported keys for {cls.__name__}: {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(known))}"
        )
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        kwargs[f.name] = _coerce_value(type_hints.get(f.name, f.type), data[f.name])
    return cls(**kwargs)  # type: ignore[arg-type]


def _coerce_value(expected_type: Any, value: Any) -> Any:
    """Coerce ``value`` into the shape implied by ``expected_type``."""
    base_type, _ = _strip_optional(expected_type)
    if value is None:
        return None
    if isinstance(base_type, type) and is_dataclass(base_type):
        return _dataclass_from_dict(base_type, value)
    origin = get_origin(base_type)
    if origin in (list, tuple, ABCSequence):
        args = get_args(base_type)
        inner = args[0] if args else Any
        items = [_coerce_value(inner, v) for v in value]
        return tuple(items) if origin is tuple else items
    if base_type is Path:
        return Path(value)
    if base_type in {str, int, float, bool}:
        return base_type(value)
    return value


def _strip_optional(typ: Any) -> Tuple[Any, bool]:
    """Strip Optional from a type annotation."""
    origin = get_origin(typ)
    if origin is Union:
        args = [arg for arg in get_args(typ) if arg is not type(None)]
        if len(args) == 1:
            base, _ = _strip_optional(args[0])
            return base, True
    return typ, False


__all__ = [
    "HarvestConfig",
    "OutputConfig",
    "GitConfig",
    "PatternConfig",
    "PoolConfig",
    "LoggingConfig",
    "load_config_from_path",
]
