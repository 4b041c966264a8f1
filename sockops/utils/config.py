# sockops/utils/config.py - Configuration management
"""
Configuration management for the sockops lifecycle manager.
Loads and validates configuration from YAML files.
"""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging


# Maps that a freshly loaded program shares with already running programs
# instead of creating private copies.
DEFAULT_SHARED_MAPS = [
    'cilium_lxc',
    'cilium_ipcache',
    'cilium_metric',
    'cilium_events',
    'sock_ops_map',
    'sock_ops_ktls_up',
    'sock_ops_ktls_down',
    'cilium_ep_to_policy',
    'cilium_proxy4',
    'cilium_proxy6',
    'cilium_lb6_reverse_nat',
    'cilium_lb4_reverse_nat',
    'cilium_lb6_services',
    'cilium_lb4_services',
    'cilium_lb6_rr_seq',
    'cilium_lb4_seq',
]


class Config:
    """
    Configuration manager for sockops.

    Loads configuration from YAML files and provides access to settings.
    """

    DEFAULT_CONFIG = {
        'paths': {
            'state_dir': '/var/run/cilium/state',
            'bpf_dir': '/var/lib/cilium/bpf',
            'map_root': '/sys/fs/bpf',
            'map_prefix': 'tc/globals',
            'cgroup_root': '/run/cilium/cgroupv2',
        },
        'tools': {
            'bpftool': 'bpftool',
            'clang': 'clang',
            'mount': 'mount',
        },
        'compile': {
            'timeout_seconds': 300,
            'extra_flags': [],
        },
        'loader': {
            'shared_maps': DEFAULT_SHARED_MAPS,
            'tool_timeout_seconds': None,
        },
        'metrics': {
            'textfile': None,
        },
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
        """
        self.logger = logging.getLogger(__name__)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                loaded_config = yaml.safe_load(f) or {}

            # Merge with defaults
            self._merge_config(self.config, loaded_config)
            self.logger.info(f"Loaded configuration from {config_file}")

        except Exception as e:
            self.logger.error(f"Failed to load config: {e}")
            raise

    def _merge_config(self, base: Dict, override: Dict):
        """
        Recursively merge configuration dictionaries.

        Args:
            base: Base configuration dictionary
            override: Override configuration dictionary
        """
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'paths.map_root')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'paths.cgroup_root')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def to_dict(self) -> Dict:
        """
        Get full configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.config)

    def save_to_file(self, config_file: str):
        """
        Save current configuration to YAML file.

        Args:
            config_file: Path to output YAML file
        """
        config_path = Path(config_file)

        try:
            with open(config_path, 'w') as f:
                yaml.dump(self.config, f, default_flow_style=False)

            self.logger.info(f"Saved configuration to {config_file}")

        except Exception as e:
            self.logger.error(f"Failed to save config: {e}")
            raise
