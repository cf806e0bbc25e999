"""
Utility functions for Polymarket client.
"""

from typing import Any, Dict, Optional


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Remove None values and empty strings from dictionary."""
    return {
        key: value for key, value in data.items()
        if value is not None and value != ""
    }


def safe_get(data: Any, path: str, default: Any = None) -> Any:
    """Safely get nested dictionary values using dot notation."""
    current = data

    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default

    return current


def env_flag(value: Optional[str], default: bool = False) -> bool:
    """Interpret an environment variable as a boolean."""
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
