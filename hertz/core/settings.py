#!/usr/bin/env python3

"""
Settings Loader
===============

Reads config/settings.json. Consumers read sections with .get() and their own
defaults, so a missing or malformed file degrades to an empty dict.
"""

import json
from typing import Dict

from hertz.core.logger import get_logger

DEFAULT_CONFIG_PATH = "config/settings.json"


def load_settings(config_path: str = DEFAULT_CONFIG_PATH) -> Dict:
    """Load configuration from settings.json"""
    try:
        with open(config_path, 'r') as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        get_logger().warning(f"Could not load config from {config_path}: {e}", category="hardware")
        return {}


def timing_setting(settings: Dict, name: str, default: float) -> float:
    """Read a value from the "timing" section"""
    return float(settings.get("timing", {}).get(name, default))
