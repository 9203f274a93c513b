"""
Configuration loader.
Reads config/app.yaml, then applies environment variable overrides.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from schemas.locations import InferenceConfig, create_default_config


class Settings:
    """Configuration manager"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _get_default_config_path(self) -> str:
        return os.getenv("POLICY_LOCATE_CONFIG") or str(Path(__file__).parent / "app.yaml")

    def _load_config(self):
        # 1. YAML file
        if os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                self._config = yaml.safe_load(f) or {}

        # 2. environment overrides
        self._load_env_overrides()

    def _load_env_overrides(self):
        env_mappings = {
            # inference
            "POLICY_QUERY": ("inference", "query"),
            "INCLUDE_PARTIAL_LOCATIONS": ("inference", "include_partial_locations"),
            "MAX_DOCUMENT_KB": ("inference", "max_document_kb"),
            # logging
            "LOG_LEVEL": ("logging", "level"),
            "LOG_FILE": ("logging", "file"),
            "LOG_CONSOLE": ("logging", "console"),
        }

        for env_key, (section, key) in env_mappings.items():
            env_value = os.getenv(env_key)
            if env_value is not None:
                if section not in self._config:
                    self._config[section] = {}

                self._config[section][key] = self._convert_env_value(env_value)

    def _convert_env_value(self, value: str) -> Any:
        # booleans
        if value.lower() in ("true", "false"):
            return value.lower() == "true"

        # numbers
        try:
            if "." in value:
                return float(value)
            else:
                return int(value)
        except ValueError:
            pass

        return value

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self._config.get(section, {}).get(key, default)

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get(section, {})

    def to_inference_config(self) -> InferenceConfig:
        """Inference options for ``LocationInferrer``"""
        inference = self.get_section("inference")
        defaults = create_default_config()

        return InferenceConfig(
            query=str(inference.get("query", defaults.query)),
            include_partial_locations=inference.get(
                "include_partial_locations", defaults.include_partial_locations
            ),
            max_document_kb=inference.get("max_document_kb", defaults.max_document_kb),
        )

    def get_logging_config(self) -> Dict[str, Any]:
        config = {"level": "INFO", "file": None, "console": True}
        config.update(self.get_section("logging"))
        return config


# global settings instance
_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    global _settings
    _settings = None
    return get_settings()
