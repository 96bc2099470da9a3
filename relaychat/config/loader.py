"""YAML configuration loader for relaychat."""
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from relaychat.config.schema import RelayChatConfig

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Load and validate relaychat configuration.

    The file is optional: without one, every setting keeps its default.
    Credentials are never read from the file, only from the environment.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Args:
            config_path: Path to YAML configuration file (optional)
        """
        self.config_path = Path(config_path) if config_path else None
        self.config = RelayChatConfig()

    def load(self) -> RelayChatConfig:
        """Load and validate configuration from the YAML file, if present."""
        if self.config_path is None:
            return self.config

        if not self.config_path.exists():
            logger.info(f"Config file {self.config_path} not found, using defaults")
            return self.config

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in {self.config_path}: {e}") from e

        self.config = self.load_dict(raw_config, source=str(self.config_path))
        return self.config

    @staticmethod
    def load_dict(raw_config: Dict[str, Any], source: str = "<dict>") -> RelayChatConfig:
        """Validate a raw configuration mapping through Pydantic."""
        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration in {source} must be a mapping, got {type(raw_config).__name__}")
        try:
            return RelayChatConfig(**raw_config)
        except Exception as e:
            raise ValueError(f"Configuration validation failed in {source}: {e}") from e
