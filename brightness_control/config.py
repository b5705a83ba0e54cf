"""
Configuration Management
========================
"""

import shutil
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .controller import DEFAULT_MAX_PHYSICAL_MONITORS
from .settings import NeutralContrastSettings

logger = logging.getLogger(__name__)

BACKENDS = ("auto", "ddcutil", "dxva2")


class Config:
    """
    Configuration manager for brightness control.

    Holds the channel options and the neutral contrast saved per monitor
    name. Unknown keys in the file are preserved on save.
    """

    DEFAULT_CONFIG_PATH = Path.home() / ".config" / "brightness-control" / "config.yaml"

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to configuration file, or None for default
        """
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._data: Dict[str, Any] = {}

        self.backend: str = "auto"
        self.max_physical_monitors: int = DEFAULT_MAX_PHYSICAL_MONITORS
        self.ddc_retry_count: int = 1
        self.ddc_sleep_multiplier: float = 0.5
        self.ddc_timeout: float = 5.0
        self.neutral_contrast: NeutralContrastSettings = {}

    def load(self) -> bool:
        """
        Load configuration from file.

        Returns:
            True if configuration was loaded successfully
        """
        if not self.config_path.exists():
            logger.warning(f"Configuration file not found: {self.config_path}")
            return False

        try:
            with open(self.config_path, 'r') as f:
                self._data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse configuration: {e}")
            return False
        except OSError as e:
            logger.error(f"Failed to load configuration: {e}")
            return False

        if not isinstance(self._data, dict):
            logger.error(f"Configuration in {self.config_path} is not a mapping")
            self._data = {}
            return False

        try:
            self._parse_config()
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Invalid configuration in {self.config_path}: {e}")
            return False
        logger.info(f"Loaded configuration from {self.config_path}")
        return True

    def _parse_config(self):
        """Parse loaded configuration data into typed attributes."""
        backend = self._data.get('backend', 'auto')
        if backend not in BACKENDS:
            logger.warning(f"Unknown backend '{backend}', using auto")
            backend = 'auto'
        self.backend = backend

        probe = self._data.get('probe') or {}
        self.max_physical_monitors = int(probe.get('max_physical_monitors', DEFAULT_MAX_PHYSICAL_MONITORS))

        ddc = self._data.get('ddc') or {}
        self.ddc_retry_count = int(ddc.get('retry_count', 1))
        self.ddc_sleep_multiplier = float(ddc.get('sleep_multiplier', 0.5))
        self.ddc_timeout = float(ddc.get('timeout', 5.0))

        self.neutral_contrast = {}
        for name, value in (self._data.get('neutral_contrast') or {}).items():
            if isinstance(value, bool) or not isinstance(value, int):
                logger.warning(f"Ignoring neutral contrast for '{name}': {value!r} is not an integer")
                continue
            self.neutral_contrast[str(name)] = value

    def save(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if configuration was saved successfully
        """
        for section in ('probe', 'ddc'):
            if not isinstance(self._data.get(section), dict):
                self._data[section] = {}

        self._data['backend'] = self.backend
        self._data['probe']['max_physical_monitors'] = self.max_physical_monitors
        self._data['ddc'].update({
            'retry_count': self.ddc_retry_count,
            'sleep_multiplier': self.ddc_sleep_multiplier,
            'timeout': self.ddc_timeout,
        })
        self._data['neutral_contrast'] = dict(sorted(self.neutral_contrast.items()))

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            return False

    def set_neutral_contrast(self, settings: Mapping[str, int]) -> bool:
        """
        Replace the saved neutral contrast values and save to file.

        Args:
            settings: Monitor name -> neutral contrast

        Returns:
            True if successfully saved
        """
        self.neutral_contrast = dict(settings)
        logger.info(f"Neutral contrast saved for {len(self.neutral_contrast)} monitor(s)")
        return self.save()

    @classmethod
    def create_default_config(cls, path: Optional[Path] = None) -> bool:
        """
        Create a default configuration file from the bundled template.

        Args:
            path: Path for the configuration file

        Returns:
            True if file was created successfully
        """
        target_path = path or cls.DEFAULT_CONFIG_PATH

        package_config = Path(__file__).parent / "config.yaml"
        if not package_config.exists():
            logger.error("Default configuration template not found")
            return False

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(package_config, target_path)
            logger.info(f"Created default configuration at {target_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to copy default config: {e}")
            return False
