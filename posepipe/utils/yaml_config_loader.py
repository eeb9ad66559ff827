"""
YAML configuration loading for pipeline services.
"""
import logging
import os
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Locate and load a YAML configuration file, exposing its sections."""

    def __init__(self, config_path: str, search_dirs: Optional[List[str]] = None):
        self.config_path = config_path
        self.search_dirs = search_dirs or []
        self.config_file: Optional[str] = None
        self.config: Dict[str, Any] = {}

    def _candidate_paths(self) -> List[str]:
        package_dir = os.path.dirname(os.path.abspath(__file__))
        paths = [self.config_path]
        paths.extend(os.path.join(d, self.config_path) for d in self.search_dirs)
        paths.extend([
            os.path.join(os.getcwd(), self.config_path),  # Current working directory
            os.path.join(package_dir, "..", "..", self.config_path),  # Project root
        ])
        return paths

    def load(self) -> Dict[str, Any]:
        """Load configuration from the first existing candidate path."""
        candidates = self._candidate_paths()
        for path in candidates:
            abs_path = os.path.abspath(path)
            if os.path.exists(abs_path):
                self.config_file = abs_path
                break

        if not self.config_file:
            logger.error(f"Configuration file '{self.config_path}' not found!")
            for i, path in enumerate(candidates, 1):
                logger.error(f"  {i}. {os.path.abspath(path)}")
            raise FileNotFoundError(f"Configuration file not found. Tried {len(candidates)} paths.")

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
        except Exception as e:
            logger.error(f"Failed to load config from {self.config_file}: {e}")
            raise

        if not isinstance(config, dict):
            raise ValueError(f"Configuration root must be a mapping, got {type(config).__name__}")

        self.config = config
        logger.info(f"Successfully loaded configuration from: {self.config_file}")
        return config

    def section(self, key: str) -> Dict[str, Any]:
        """Return one top-level section, empty when missing."""
        value = self.config.get(key) or {}
        if not isinstance(value, dict):
            raise ValueError(f"Configuration section '{key}' must be a mapping")
        return value
