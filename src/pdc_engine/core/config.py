"""Configuration management for the PDC engine."""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
import structlog

from ..normalization.measures import DEFAULT_VALUE_SETS

logger = structlog.get_logger()


def _default_value_sets() -> Dict[str, List[str]]:
    return {measure: list(codes) for measure, codes in DEFAULT_VALUE_SETS.items()}


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    json_output: bool = Field(default=False)


class RefillConfig(BaseModel):
    """Refill estimation settings."""
    standard_days_supply: int = Field(default=30, gt=0)
    new_patient_window_days: int = Field(default=90, ge=0)


class MeasureConfig(BaseModel):
    """Measure value sets keyed by measure code (MAC, MAD, MAH)."""
    value_sets: Dict[str, List[str]] = Field(default_factory=_default_value_sets)


class Config(BaseModel):
    """Main configuration class for the PDC engine.

    The measure constants (80% threshold, 20% gap allowance, tier and
    priority tables) are fixed by the measure definition and are not part
    of the configuration.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    refills: RefillConfig = Field(default_factory=RefillConfig)
    measures: MeasureConfig = Field(default_factory=MeasureConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """Load configuration from YAML file."""
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return cls()

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        except Exception as e:
            logger.error(f"Error loading config from {config_path}: {e}")
            return cls()

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config_data = {}

        env_mappings = {
            "PDC_LOG_LEVEL": ("logging", "level"),
            "PDC_LOG_JSON": ("logging", "json_output"),
            "PDC_STANDARD_DAYS_SUPPLY": ("refills", "standard_days_supply"),
            "PDC_NEW_PATIENT_WINDOW_DAYS": ("refills", "new_patient_window_days"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                if section not in config_data:
                    config_data[section] = {}
                # Convert to appropriate type
                if key in ["standard_days_supply", "new_patient_window_days"]:
                    value = int(value)
                elif key == "json_output":
                    value = value.lower() in ("true", "1", "yes")
                config_data[section][key] = value

        return cls(**config_data)

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        config_dict = self.model_dump()
        with open(output_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Configuration saved to {output_path}")


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration with fallback strategy."""
    if config_path and Path(config_path).exists():
        return Config.from_yaml(config_path)

    # Try default config locations
    default_paths = [
        "config/pdc_engine.yaml",
        "pdc_engine.yaml",
        "/etc/pdc_engine/config.yaml"
    ]

    for path in default_paths:
        if Path(path).exists():
            return Config.from_yaml(path)

    # Fall back to environment variables
    logger.info("No config file found, loading from environment variables")
    return Config.from_env()
