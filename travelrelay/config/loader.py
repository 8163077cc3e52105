"""YAML configuration loader for TravelRelay."""
from pathlib import Path
from typing import Optional

import yaml

from travelrelay.config.schema import TravelRelayConfig


class ConfigLoader:
    """Load and validate TravelRelay configuration."""

    def __init__(self, config_path: str):
        """
        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self.config: Optional[TravelRelayConfig] = None

    def load(self) -> TravelRelayConfig:
        """Load and validate configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in {self.config_path}: {e}") from e

        # Validate through Pydantic
        try:
            self.config = TravelRelayConfig(**raw_config)
        except Exception as e:
            raise ValueError(f"Configuration validation failed in {self.config_path}: {e}") from e

        return self.config
