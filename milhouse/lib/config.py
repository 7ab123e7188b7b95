"""
Project configuration.

Loads .milhouse/config.yaml and merges it over built-in defaults. If no config
file exists, returns defaults. Keys are camelCase to match the files users
already have:

    global:   {model: sonnet, maxTokens: 100000}
    phases:
      planner:  {model: sonnet, maxTokens: 80000,  progressLines: 20}
      builder:  {model: sonnet, maxTokens: 100000, progressLines: 20}
      reviewer: {model: sonnet, maxTokens: 80000,  progressLines: 200}
      chat:     {model: sonnet}
    contextFiles: []
    loop: {maxIdleIterations: 3}
    claude: {binary: claude}

A file that exists but cannot be parsed, or holds out-of-range values, is a
hard ConfigError.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

from milhouse.lib.constants import (
    CONFIG_FILE,
    MAX_PROGRESS_LINES,
    MAX_TOKENS,
    MIN_PROGRESS_LINES,
    MIN_TOKENS,
    MODEL_SONNET,
    PHASE_BUILDER,
    PHASE_CHAT,
    PHASE_PLANNER,
    PHASE_REVIEWER,
    VALID_MODELS,
)
from milhouse.lib.validate import ValidationError, validate
from milhouse.prd.paths import milhouse_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_IDLE_ITERATIONS = 3
DEFAULT_BINARY = "claude"


class ConfigError(Exception):
    """Configuration file is unreadable or holds invalid values."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


@dataclass
class PhaseConfig:
    """Settings for one phase. Zero/empty means "inherit from global"."""
    model: str = ""
    max_tokens: int = 0
    progress_lines: int = 0


# progressLines 0 for chat: the chat prompt carries no progress excerpt
DEFAULT_PHASES = {
    PHASE_PLANNER: PhaseConfig(model=MODEL_SONNET, max_tokens=80000, progress_lines=20),
    PHASE_BUILDER: PhaseConfig(model=MODEL_SONNET, max_tokens=100000, progress_lines=20),
    PHASE_REVIEWER: PhaseConfig(model=MODEL_SONNET, max_tokens=80000, progress_lines=200),
    PHASE_CHAT: PhaseConfig(model=MODEL_SONNET, max_tokens=0, progress_lines=0),
}


@dataclass
class Config:
    model: str = MODEL_SONNET
    max_tokens: int = 100000
    phases: dict[str, PhaseConfig] = field(
        default_factory=lambda: {name: replace(pc) for name, pc in DEFAULT_PHASES.items()}
    )
    context_files: list[str] = field(default_factory=list)
    max_idle_iterations: int = DEFAULT_MAX_IDLE_ITERATIONS
    binary: str = DEFAULT_BINARY

    def phase(self, name: str) -> PhaseConfig:
        """Effective settings for a phase, with global fallbacks applied."""
        if name not in self.phases:
            logger.warning(f"Unknown phase '{name}', using planner settings")
            name = PHASE_PLANNER
        configured = self.phases[name]
        return PhaseConfig(
            model=configured.model or self.model,
            max_tokens=configured.max_tokens or self.max_tokens,
            progress_lines=configured.progress_lines or DEFAULT_PHASES[name].progress_lines,
        )

    def to_dict(self) -> dict:
        phases = {}
        for name, pc in self.phases.items():
            entry = {}
            if pc.model:
                entry["model"] = pc.model
            if pc.max_tokens:
                entry["maxTokens"] = pc.max_tokens
            if pc.progress_lines:
                entry["progressLines"] = pc.progress_lines
            phases[name] = entry
        return {
            "global": {"model": self.model, "maxTokens": self.max_tokens},
            "phases": phases,
            "contextFiles": list(self.context_files),
            "loop": {"maxIdleIterations": self.max_idle_iterations},
            "claude": {"binary": self.binary},
        }


def _merge_context_files(base: list[str], extra: list[str]) -> list[str]:
    merged = list(base)
    for path in extra:
        if path not in merged:
            merged.append(path)
    return merged


def merge_config(config: Config, data: dict) -> Config:
    """Overlay a parsed config document on a Config. Empty values are ignored."""
    merged = replace(
        config,
        phases={name: replace(pc) for name, pc in config.phases.items()},
        context_files=list(config.context_files),
    )

    global_section = data.get("global") or {}
    if global_section.get("model"):
        merged.model = global_section["model"]
    if global_section.get("maxTokens"):
        merged.max_tokens = global_section["maxTokens"]

    for name, section in (data.get("phases") or {}).items():
        section = section or {}
        pc = merged.phases.setdefault(name, PhaseConfig())
        if section.get("model"):
            pc.model = section["model"]
        if section.get("maxTokens"):
            pc.max_tokens = section["maxTokens"]
        if section.get("progressLines"):
            pc.progress_lines = section["progressLines"]

    merged.context_files = _merge_context_files(merged.context_files, data.get("contextFiles") or [])

    loop_section = data.get("loop") or {}
    if loop_section.get("maxIdleIterations"):
        merged.max_idle_iterations = loop_section["maxIdleIterations"]

    claude_section = data.get("claude") or {}
    if claude_section.get("binary"):
        merged.binary = claude_section["binary"]

    return merged


def validate_config(config: Config) -> None:
    """Range-check a merged config.

    Raises:
        ConfigError: On the first invalid value
    """
    def _check_model(where: str, model: str) -> None:
        if model and model not in VALID_MODELS:
            raise ConfigError(f"{where}: invalid model '{model}' (valid: {', '.join(VALID_MODELS)})")

    def _check_tokens(where: str, tokens: int) -> None:
        if tokens and not MIN_TOKENS <= tokens <= MAX_TOKENS:
            raise ConfigError(f"{where}: maxTokens {tokens} outside {MIN_TOKENS}-{MAX_TOKENS}")

    _check_model("global", config.model)
    _check_tokens("global", config.max_tokens)
    for name, pc in config.phases.items():
        _check_model(f"phases.{name}", pc.model)
        _check_tokens(f"phases.{name}", pc.max_tokens)
        if pc.progress_lines and not MIN_PROGRESS_LINES <= pc.progress_lines <= MAX_PROGRESS_LINES:
            raise ConfigError(
                f"phases.{name}: progressLines {pc.progress_lines} outside "
                f"{MIN_PROGRESS_LINES}-{MAX_PROGRESS_LINES}"
            )
    if config.max_idle_iterations < 1:
        raise ConfigError(f"loop.maxIdleIterations must be at least 1, got {config.max_idle_iterations}")


def load_config(base_path: Path) -> Config:
    """Load .milhouse/config.yaml merged over defaults.

    Raises:
        ConfigError: If the file exists but is invalid
    """
    config_path = milhouse_path(base_path, CONFIG_FILE)
    if not config_path.exists():
        return Config()

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}", config_path) from e
    except OSError as e:
        raise ConfigError(f"cannot read: {e}", config_path) from e

    if data is None:
        return Config()

    try:
        validate(data, "config")
    except ValidationError as e:
        raise ConfigError(str(e), config_path) from None

    config = merge_config(Config(), data)
    try:
        validate_config(config)
    except ConfigError as e:
        raise ConfigError(str(e), config_path) from None
    logger.debug(f"Loaded config from {config_path}")
    return config


def apply_overrides(
    config: Config,
    models: Optional[dict[str, str]] = None,
    max_tokens: Optional[dict[str, int]] = None,
    max_idle_iterations: Optional[int] = None,
) -> Config:
    """Apply command-line overrides (phase name -> value) and revalidate.

    Raises:
        ConfigError: If an override is out of range
    """
    data: dict = {"phases": {}}
    for name, model in (models or {}).items():
        if model:
            data["phases"].setdefault(name, {})["model"] = model
    for name, tokens in (max_tokens or {}).items():
        if tokens:
            data["phases"].setdefault(name, {})["maxTokens"] = tokens
    if max_idle_iterations is not None:
        if max_idle_iterations < 1:
            raise ConfigError(f"max idle iterations must be at least 1, got {max_idle_iterations}")
        data["loop"] = {"maxIdleIterations": max_idle_iterations}

    merged = merge_config(config, data)
    validate_config(merged)
    return merged


def save_config(base_path: Path, config: Config) -> Path:
    """Validate and write config.yaml. Returns the path written.

    Raises:
        ConfigError: If the config is invalid or cannot be written
    """
    validate_config(config)
    config_path = milhouse_path(base_path, CONFIG_FILE)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False))
    except OSError as e:
        raise ConfigError(f"cannot write: {e}", config_path) from e
    return config_path
