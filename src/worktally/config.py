"""
Engine settings.

Defaults are overlaid by an optional YAML file (an explicit path or
WORKTALLY_CONFIG) and then by environment variables.
"""
import os
import yaml
from pathlib import Path
from typing import Optional, Union, Dict, Any
from pydantic import BaseModel, Field, ValidationError, model_validator

from .logs import get_logger
from .recovery import ConfigError

log = get_logger("config")

ENV_PREFIX = "WORKTALLY_"
_TRUTHY = ('1', 'true', 'yes', 'on')

class EngineSettings(BaseModel):
    cache_ttl_seconds: float = Field(default=1.0, gt=0, description="How long aggregated stats stay fresh")
    inherit_subtask_blocking: bool = Field(default=False, description="Whether subtask dependencies block the parent's status")
    default_personnel_count: int = Field(default=1, ge=1, description="Crew size for a timer when the task sets none")
    max_personnel_count: int = Field(default=100, ge=1, description="Upper bound accepted for a time entry's crew size")

    @model_validator(mode='after')
    def validate_personnel_bounds(self):
        if self.default_personnel_count > self.max_personnel_count:
            raise ValueError("default_personnel_count cannot exceed max_personnel_count")
        return self

def _from_env() -> Dict[str, Any]:
    overrides = {}
    ttl = os.getenv(f'{ENV_PREFIX}CACHE_TTL', '')
    if ttl:
        overrides['cache_ttl_seconds'] = ttl
    inherit = os.getenv(f'{ENV_PREFIX}INHERIT_SUBTASK_BLOCKING', '')
    if inherit:
        overrides['inherit_subtask_blocking'] = inherit.lower() in _TRUTHY
    return overrides

def _from_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data

def load_settings(path: Optional[Union[Path, str]] = None) -> EngineSettings:
    """Build settings from defaults, a YAML file and the environment, in that order."""
    values: Dict[str, Any] = {}

    config_path = path or os.getenv(f'{ENV_PREFIX}CONFIG', '')
    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            values.update(_from_file(config_path))
            log.debug(f"Loaded settings from {config_path}")
        elif path is not None:
            raise ConfigError(f"Config file not found: {config_path}")
        else:
            log.warning(f"{ENV_PREFIX}CONFIG points at a missing file: {config_path}")

    values.update(_from_env())

    try:
        return EngineSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e
