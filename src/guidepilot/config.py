"""Guidepilot configuration management."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)

GUIDEPILOT_HOME = Path.home() / ".guidepilot"
GUIDEPILOT_CONFIG = GUIDEPILOT_HOME / "config.json"

SUPPORTED_PROVIDERS = ("openai", "anthropic")

ENV_OVERRIDES = {
    "provider": "GUIDEPILOT_PROVIDER",
    "model": "GUIDEPILOT_MODEL",
    "api_keys.openai": "GUIDEPILOT_OPENAI_API_KEY",
    "api_keys.anthropic": "GUIDEPILOT_ANTHROPIC_API_KEY",
}


class GuidepilotError(Exception):
    """Base error for invalid guidepilot configuration."""


def env_overrides() -> dict[str, str]:
    return {key: os.environ[var] for key, var in ENV_OVERRIDES.items() if os.environ.get(var)}


@dataclass
class ContextAwareConfig:
    """Project-context scanning for the context-aware source."""

    enabled: bool = True
    enable_framework_detection: bool = True
    enable_git_integration: bool = True
    cache_interval_minutes: float = 5.0


@dataclass
class PatternConfig:
    """Deterministic pattern library settings."""

    enabled: bool = True
    categories: list[str] = field(
        default_factory=lambda: ["repetition", "errors", "churn", "environment", "git"]
    )
    repetition_threshold: int = 3  # Identical lines before calling it a loop


@dataclass
class AutopilotConfig:
    """Top-level autopilot policy.

    API keys are only read from this config (or the GUIDEPILOT_* env vars
    applied by ``load``), never from the providers' own env vars.
    """

    enabled: bool = False
    provider: str = "openai"
    model: str = "gpt-4.1"
    max_guidances_per_hour: int = 20
    analysis_delay_ms: int = 3000
    intervention_threshold: float = 0.5
    guide_prompt: str = ""
    api_keys: dict[str, str] = field(default_factory=dict)
    context: ContextAwareConfig = field(default_factory=ContextAwareConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "AutopilotConfig":
        config = cls()
        for key, value in data.items():
            if key == "context":
                for k, v in value.items():
                    setattr(config.context, k, v)
            elif key == "patterns":
                for k, v in value.items():
                    setattr(config.patterns, k, v)
            elif key == "api_keys":
                config.api_keys = dict(value)
            elif hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning("Ignoring unknown config key: %s", key)
        return config

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def load(cls, path: Path | None = None) -> "AutopilotConfig":
        """Load config from disk or return defaults.

        Env vars override file config for provider, model and API keys.
        """
        config = cls._read(path or GUIDEPILOT_CONFIG)
        for key, value in env_overrides().items():
            apply_setting(config, key, value)
        return config

    @classmethod
    def _read(cls, path: Path) -> "AutopilotConfig":
        if not path.exists():
            return cls()
        try:
            return cls.from_dict(json.loads(path.read_text()))
        except (json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.warning("Failed to parse %s, using defaults: %s", path, e)
            return cls()

    def save(self, path: Path | None = None) -> None:
        """Persist config to disk.

        Values still equal to their GUIDEPILOT_* env override are written as
        the file already had them, so env secrets never land on disk.
        """
        path = path or GUIDEPILOT_CONFIG
        data = self.to_dict()
        overrides = env_overrides()
        if overrides:
            stored = self._read(path).to_dict()
            for key, value in overrides.items():
                section, _, name = key.rpartition(".")
                current = data[section] if section else data
                previous = stored[section] if section else stored
                if current.get(name) != value:
                    continue
                if name in previous:
                    current[name] = previous[name]
                else:
                    current.pop(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))

    def validate(self) -> None:
        if self.provider not in SUPPORTED_PROVIDERS:
            raise GuidepilotError(f"Unsupported provider: {self.provider}")
        if self.max_guidances_per_hour < 0:
            raise GuidepilotError("max_guidances_per_hour must be >= 0")
        if self.analysis_delay_ms <= 0:
            raise GuidepilotError("analysis_delay_ms must be positive")
        if not 0.0 <= self.intervention_threshold <= 1.0:
            raise GuidepilotError("intervention_threshold must be within [0, 1]")


def _coerce(current, raw: str):
    if isinstance(current, bool):
        lowered = raw.lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise GuidepilotError(f"Expected a boolean, got {raw!r}")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def apply_setting(config: AutopilotConfig, key: str, raw_value: str) -> None:
    """Apply a ``section.key=value`` style setting, coercing to the field's type.

    ``api_keys.<provider>`` sets a provider key.
    """
    parts = key.split(".")
    if parts[0] == "api_keys" and len(parts) == 2:
        config.api_keys[parts[1]] = raw_value
        return

    target = config
    for part in parts[:-1]:
        if part not in {f.name for f in fields(target)}:
            raise GuidepilotError(f"Unknown config section: {part}")
        target = getattr(target, part)

    name = parts[-1]
    if name not in {f.name for f in fields(target)}:
        raise GuidepilotError(f"Unknown config key: {key}")
    try:
        setattr(target, name, _coerce(getattr(target, name), raw_value))
    except ValueError as e:
        raise GuidepilotError(f"Invalid value for {key}: {raw_value!r}") from e


class ConfigStore:
    """Synchronous key-value facade over the JSON config file."""

    def __init__(self, path: Path | None = None):
        self.path = path or GUIDEPILOT_CONFIG
        self._config = AutopilotConfig.load(self.path)

    def get_autopilot_config(self) -> AutopilotConfig:
        return self._config

    def set_autopilot_config(self, config: AutopilotConfig) -> None:
        config.validate()
        self._config = config
        config.save(self.path)
