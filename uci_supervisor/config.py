"""
Engine configuration for the UCI supervisor.

Values are read from dataclass defaults, then an optional YAML file, then
environment variables. The core only ever reads an EngineConfig.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_ENGINE_PATH = os.getenv("STOCKFISH_PATH", "/usr/local/bin/stockfish")

# env var -> (field, converter)
_ENV_OVERRIDES = (
    ("STOCKFISH_PATH", "engine_path", str),
    ("UCI_DEPTH", "depth", int),
    ("UCI_MULTIPV", "multipv", int),
    ("UCI_MIN_TIME_MS", "min_analysis_time_ms", int),
    ("UCI_MAX_RETRIES", "max_retries", int),
)


@dataclass
class EngineConfig:
    engine_path: str = DEFAULT_ENGINE_PATH
    engine_args: List[str] = field(default_factory=list)

    # Search
    depth: int = 15
    multipv: int = 1
    min_analysis_time_ms: int = 500  # 0 = depth-based search

    # Deadlines
    response_timeout_ms: int = 10000
    movetime_buffer_ms: int = 2000
    handshake_timeout_ms: int = 5000
    sync_timeout_ms: int = 3000
    start_grace_ms: int = 100
    restart_delay_ms: int = 100

    # Recovery
    max_retries: int = 3

    # Engine options
    show_wdl: bool = True
    options: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> "EngineConfig":
        if not self.engine_path:
            raise ValueError("engine_path must not be empty")
        if self.depth < 1:
            raise ValueError(f"depth must be positive, got {self.depth}")
        if self.multipv < 1:
            raise ValueError(f"multipv must be at least 1, got {self.multipv}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        for name in (
            "min_analysis_time_ms",
            "response_timeout_ms",
            "movetime_buffer_ms",
            "handshake_timeout_ms",
            "sync_timeout_ms",
            "start_grace_ms",
            "restart_delay_ms",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown engine config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: Optional[Path] = None) -> "EngineConfig":
        """
        Load configuration from a YAML file.

        The file may hold the keys at top level or under an `engine:` mapping.
        A missing file yields the defaults.
        """
        if yaml_path is None:
            for candidate in (Path("engine.yml"), Path("config/engine.yml")):
                if candidate.exists():
                    yaml_path = candidate
                    break

        if yaml_path is None or not Path(yaml_path).exists():
            return cls()

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{yaml_path}: expected a mapping at top level")
        section = data.get("engine", data)
        if not isinstance(section, dict):
            raise ValueError(f"{yaml_path}: `engine` must be a mapping")
        return cls.from_dict(section)

    def with_env(self, environ: Optional[Dict[str, str]] = None) -> "EngineConfig":
        """Return a copy with environment overrides applied."""
        env = os.environ if environ is None else environ
        values = self.to_dict()
        for var, name, convert in _ENV_OVERRIDES:
            raw = env.get(var)
            if raw:
                try:
                    values[name] = convert(raw)
                except ValueError as exc:
                    raise ValueError(f"{var}={raw!r} is not a valid {name}") from exc
        return type(self)(**values)

    @classmethod
    def load(cls, yaml_path: Optional[Path] = None) -> "EngineConfig":
        return cls.from_yaml(yaml_path).with_env().validate()

    def to_dict(self) -> Dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["engine_args"] = list(self.engine_args)
        values["options"] = dict(self.options)
        return values
