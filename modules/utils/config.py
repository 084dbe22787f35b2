"""
Centralized configuration manager.
Loads the YAML config and provides typed access with defaults.

    - Schema validation for critical config fields
    - Built-in defaults merged under the file values
    - Reset support for testing
"""

import os
import copy
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

DEFAULTS = {
    "system": {"name": "Aurum Atelier", "version": "1.0.0"},
    "camera": {
        "device_id": 0,
        "width": 1280,
        "height": 720,
        "fps": 30,
        "backend": "auto",
        "flip_horizontal": True,
    },
    "detection": {
        "hands": {
            "max_num_hands": 1,
            "model_complexity": 0,
            "min_detection_confidence": 0.5,
            "min_tracking_confidence": 0.5,
        },
        "face": {
            "max_num_faces": 1,
            "refine_landmarks": True,
            "min_detection_confidence": 0.5,
            "min_tracking_confidence": 0.5,
        },
    },
    "gesture": {"swipe_threshold": 0.12, "cooldown_ms": 600, "flash_ms": 300},
    "overlay": {"earring_scale": 0.25, "necklace_scale": 1.2, "necklace_drop": 0.2},
    "catalog": {
        "asset_root": "assets",
        "extension": "png",
        "background_loading": True,
        "categories": {
            "gold_earrings": {"kind": "earring", "count": 5},
            "gold_necklaces": {"kind": "necklace", "count": 5},
            "diamond_earrings": {"kind": "earring", "count": 5},
            "diamond_necklaces": {"kind": "necklace", "count": 6},
        },
    },
    "tryall": {"settle_ms": 1800, "capture_flash_ms": 100},
    "export": {
        "entry_prefix": "Aurum_Look_",
        "bundle_name": "My_Aurum_Collection.zip",
        "output_dir": "exports",
        "share": {
            "title": "Aurum Atelier",
            "text": "Check out my virtual jewelry looks!",
            "url": "",
        },
    },
    "visualization": {"enabled": True, "window_name": "Aurum Atelier",
                      "gallery_window": "Aurum Gallery"},
    "logging": {"level": "INFO", "file": None, "max_size_mb": 10, "backup_count": 3},
}

# Schema: required sections and their expected types
_CONFIG_SCHEMA = {
    "camera": {
        "device_id": int,
        "width": int,
        "height": int,
        "fps": int,
    },
    "gesture": {
        "swipe_threshold": float,
        "cooldown_ms": int,
    },
    "overlay": {
        "earring_scale": float,
        "necklace_scale": float,
        "necklace_drop": float,
    },
    "catalog": {
        "asset_root": str,
        "categories": dict,
    },
    "tryall": {
        "settle_ms": int,
    },
    "export": {
        "entry_prefix": str,
        "bundle_name": str,
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._data = copy.deepcopy(DEFAULTS)
        return cls._instance

    def load(self, config_path=None):
        """Load configuration from a YAML file on top of the defaults."""
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")

        try:
            with open(config_path, "r") as f:
                file_data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            file_data = {}

        # An explicit category table replaces the default catalog rather than extending it
        categories = (file_data.get("catalog") or {}).get("categories")
        self._data = _deep_merge(copy.deepcopy(DEFAULTS), file_data)
        if categories is not None:
            self._data["catalog"]["categories"] = categories

        self._validate()
        return self

    def _validate(self):
        """Validate critical config fields against schema."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                warnings.append(f"Missing config section: '{section_name}'")
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name in section:
                    value = section[field_name]
                    # Allow int where float is expected
                    if expected_type is float and isinstance(value, (int, float)):
                        continue
                    if not isinstance(value, expected_type):
                        warnings.append(
                            f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                            f"got {type(value).__name__} ({value!r})"
                        )

        for name, entry in (self.catalog.get("categories") or {}).items():
            count = entry.get("count") if isinstance(entry, dict) else entry
            if not isinstance(count, int) or count < 0:
                warnings.append(f"catalog.categories.{name}: count must be a non-negative int")

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'camera.width'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value):
        """Override a nested value (command-line overrides)."""
        keys = key_path.split(".")
        node = self._data
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value

    def get_section(self, section: str) -> dict:
        """Get an entire config section."""
        return self._data.get(section, {})

    @property
    def camera(self) -> dict:
        return self._data.get("camera", {})

    @property
    def detection(self) -> dict:
        return self._data.get("detection", {})

    @property
    def gesture(self) -> dict:
        return self._data.get("gesture", {})

    @property
    def overlay(self) -> dict:
        return self._data.get("overlay", {})

    @property
    def catalog(self) -> dict:
        return self._data.get("catalog", {})

    @property
    def tryall(self) -> dict:
        return self._data.get("tryall", {})

    @property
    def export(self) -> dict:
        return self._data.get("export", {})

    @property
    def visualization(self) -> dict:
        return self._data.get("visualization", {})

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    def resolve_path(self, path: str) -> str:
        """Resolve a config path relative to the project root."""
        if os.path.isabs(path):
            return path
        return os.path.join(_BASE_DIR, path)

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
