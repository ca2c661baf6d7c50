"""
config.py

Typed configuration loading and validation for cuesheet.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- Work without any config file: the scheduler core needs none, only drivers and the demo read it
- No other I/O beyond reading the config file (no directory creation)

Config file location
- If CUESHEET_CONFIG_PATH is set, that file is used (and must exist).
- Otherwise these paths are searched in order and the first one that exists is used:
  1) ./cuesheet_config.json (current working directory)
  2) <user config dir>/Cuesheet/cuesheet_config.json
  3) <user config dir>/Cuesheet/config.json
- If none exists, built-in defaults are used.

Example config file (cuesheet_config.json)
{
  "driver": {
    "tick_ms": 16
  },
  "demo": {
    "total_duration_ms": 7500,
    "headless_step_ms": 100
  },
  "logging": {
    "level": "INFO"
  }
}
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator


class DriverConfig(BaseModel):
    tick_ms: int = Field(default=16, ge=1, le=1000, description="Real-time driver timer period in milliseconds.")


class DemoConfig(BaseModel):
    total_duration_ms: int = Field(default=7500, ge=1, description="Countdown demo timeline length.")
    headless_step_ms: int = Field(default=100, ge=1, description="Virtual step size for the headless demo run.")


class LoggingConfig(BaseModel):
    level: str = Field(default="WARNING", description="DEBUG, INFO, WARNING, ERROR, or CRITICAL")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError("level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized


class AppConfig(BaseModel):
    driver: DriverConfig = Field(default_factory=DriverConfig)
    demo: DemoConfig = Field(default_factory=DemoConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("Cuesheet", "Cuesheet"))
    return [
        Path.cwd() / "cuesheet_config.json",
        config_directory / "cuesheet_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("CUESHEET_CONFIG_PATH", "").strip()
    if explicit_path_text:
        explicit_path = Path(explicit_path_text)
        if not explicit_path.exists():
            raise FileNotFoundError(f"CUESHEET_CONFIG_PATH points to a missing file: {explicit_path}")
        return explicit_path

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional and win over the config file.

    Override variables:
    - CUESHEET_TICK_MS
    - CUESHEET_DEMO_TOTAL_DURATION_MS
    - CUESHEET_DEMO_HEADLESS_STEP_MS
    - CUESHEET_LOG_LEVEL
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            section = dict(section)
        else:
            section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    driver_section = ensure_nested(updated_config, "driver")
    demo_section = ensure_nested(updated_config, "demo")
    logging_section = ensure_nested(updated_config, "logging")

    def override_string(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "")
        if value_text.strip():
            target_dict[key_name] = value_text.strip()

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            return

    override_int("CUESHEET_TICK_MS", driver_section, "tick_ms")
    override_int("CUESHEET_DEMO_TOTAL_DURATION_MS", demo_section, "total_duration_ms")
    override_int("CUESHEET_DEMO_HEADLESS_STEP_MS", demo_section, "headless_step_ms")
    override_string("CUESHEET_LOG_LEVEL", logging_section, "level")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict: Dict[str, Any] = {}
    if resolved_path is not None:
        json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "defaults and environment"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Optional[Path]]:
    return load_config()


def to_json(config: AppConfig) -> str:
    return json.dumps(config.model_dump(), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
