"""
Configuration management for the screen-print renderer.
Handles loading, saving, and managing user preferences and custom presets.
"""

import copy
import json
import logging
import os
from typing import Any, Optional, Dict
from pathlib import Path

from presets import PRESETS, preset_key

__all__ = [
    'ConfigManager',
]

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages application configuration and user preferences."""

    DEFAULT_CONFIG = {
        # Default render settings
        "defaults": {
            "preset": None,
            "image_scale": 1.0,
            "brightness": 0.0,
            "contrast": 0.0,
            "invert": False,
            "background": "#ffffff",
            "export_scale": 1,
            "workers": 1
        },

        # Ink bleed defaults
        "ink_bleed": {
            "enabled": False,
            "amount": 0.5,
            "roughness": 0.5
        },

        # Files the renderer reads
        "paths": {
            "palette_file": None  # None means the built-in palette
        },

        # User presets keyed by lowercased name
        "custom_presets": {},

        # Rendered outputs, newest first (keep last 10)
        "recent_files": []
    }

    def __init__(self, config_file: str = "config.json"):
        """
        Initialize config manager.

        Args:
            config_file: Path to config file
        """
        self.config_file = config_file
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """Load config from file, or create default if not exists."""
        defaults = copy.deepcopy(self.DEFAULT_CONFIG)
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                # Merge with defaults to handle new settings
                return self._merge_configs(defaults, loaded)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading config: {e}")
                return defaults
        self.config = defaults
        self.save()
        return defaults

    def _merge_configs(self, default: Dict, loaded: Dict) -> Dict:
        """
        Recursively merge loaded config with defaults.
        Ensures all default keys exist even if not in loaded config.
        """
        for key, value in default.items():
            if key in loaded:
                if isinstance(value, dict) and value and isinstance(loaded[key], dict):
                    default[key] = self._merge_configs(value, loaded[key])
                else:
                    default[key] = loaded[key]
        return default

    def save(self):
        """Save current config to file."""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4)
        except OSError as e:
            logger.error(f"Error saving config: {e}")

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "image_scale")
            default: Default value if key not found

        Returns:
            Config value or default

        Example:
            config.get("ink_bleed", "amount")  # Returns 0.5
        """
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any):
        """
        Set config value by nested keys.

        Args:
            *keys: Nested keys (e.g., "defaults", "background")
            value: Value to set

        Example:
            config.set("defaults", "background", value="#f5f0e6")
        """
        if len(keys) == 0:
            return

        # Navigate to the parent dict
        current = self.config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def job_defaults(self) -> Dict[str, Any]:
        """
        The stored defaults, shaped like a job config so they can fill in
        whatever a job file leaves out.

        Returns:
            Dict with preset, palette, adjustments, ink_bleed, background,
            export and workers entries
        """
        d = self.get("defaults", default={})
        palette_file = self.get("paths", "palette_file")
        return {
            "preset": d.get("preset"),
            "palette": str(Path(palette_file).expanduser().resolve()) if palette_file else None,
            "adjustments": {
                "brightness": d.get("brightness", 0.0),
                "contrast": d.get("contrast", 0.0),
                "invert": d.get("invert", False),
                "image_scale": d.get("image_scale", 1.0),
            },
            "ink_bleed": dict(self.get("ink_bleed", default={})),
            "background": d.get("background", "#ffffff"),
            "export": {"scale": d.get("export_scale", 1)},
            "workers": d.get("workers", 1),
        }

    def add_recent_file(self, filepath: str, max_recent: int = 10):
        """
        Add file to recent files list.

        Args:
            filepath: File path to add
            max_recent: Maximum number of recent files to keep
        """
        recent = list(self.get("recent_files", default=[]))
        if filepath in recent:
            recent.remove(filepath)
        recent.insert(0, filepath)
        self.set("recent_files", value=recent[:max_recent])

    def get_recent_files(self, max_count: int = 10) -> list:
        """Recent files that still exist, newest first."""
        recent = self.get("recent_files", default=[])
        existing = [f for f in recent if os.path.exists(f)]
        return existing[:max_count]

    # -------------------- Custom presets --------------------

    def get_custom_presets(self) -> Dict[str, Dict]:
        return dict(self.get("custom_presets", default={}))

    def get_preset(self, key: str) -> Optional[Dict]:
        """
        Look up a preset by key, custom presets first, then built-ins.
        """
        key = preset_key(key)
        custom = self.get_custom_presets()
        if key in custom:
            return custom[key]
        return PRESETS.get(key)

    def save_custom_preset(self, name: str, preset: Dict) -> str:
        """
        Store a preset under its normalized name and persist the config.

        Args:
            name: Display name ("My Poster" is stored as "my_poster")
            preset: Preset dict, as produced by presets.preset_from_params

        Returns:
            The storage key

        Raises:
            ValueError: If the name is blank
        """
        key = preset_key(name)
        if not key:
            raise ValueError("Preset name cannot be empty")
        if key in PRESETS:
            logger.warning(f"Custom preset '{key}' shadows the built-in preset of the same name")
        custom = self.get_custom_presets()
        custom[key] = preset
        self.set("custom_presets", value=custom)
        self.save()
        return key

    def delete_custom_preset(self, key: str) -> bool:
        """
        Remove a custom preset and persist the config.

        Returns:
            True if a preset was removed
        """
        key = preset_key(key)
        custom = self.get_custom_presets()
        if key not in custom:
            return False
        del custom[key]
        self.set("custom_presets", value=custom)
        self.save()
        return True
