"""
Configuration Management Module

Loads config.yaml from the project root once and hands out sections as
plain dictionaries. Components read their section with `.get(key, default)`
so every setting has a code default as well.

Usage:
    from facematch.config import get_config, get_sampling_config
    refresh_hz = get_sampling_config().get("refresh_hz", 60)
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CONFIG_FILENAME = "config.yaml"

# Cached configuration (module-level singleton)
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Find the project root: the nearest parent directory holding config.yaml.

    Raises:
        FileNotFoundError: If no parent directory contains config.yaml.
    """
    current_dir = Path(__file__).resolve().parent

    while current_dir != current_dir.parent:
        if (current_dir / CONFIG_FILENAME).exists():
            return current_dir
        current_dir = current_dir.parent

    raise FileNotFoundError(
        f"Could not find {CONFIG_FILENAME} in any parent directory. "
        "Make sure you're running from within the project directory."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the file. Defaults to <project root>/config.yaml.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    if config_path is None:
        path = get_project_root() / CONFIG_FILENAME
    else:
        path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Get the configuration singleton.

    Args:
        reload: Force re-reading config.yaml from disk.
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config()

    return _config_instance


def set_config(config: Optional[Dict[str, Any]]) -> None:
    """Replace the cached configuration (None clears it)."""
    global _config_instance
    _config_instance = config


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Get a top-level configuration section.

    Raises:
        KeyError: If the section doesn't exist.
    """
    config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name] or {}


def get_video_config() -> Dict[str, Any]:
    """Camera device settings."""
    return get_section("video")


def get_sampling_config() -> Dict[str, Any]:
    """Frame sampling cadence."""
    return get_section("sampling")


def get_reference_config() -> Dict[str, Any]:
    """Reference image settings."""
    return get_section("reference")


def get_face_detection_config() -> Dict[str, Any]:
    return get_section("face_detection")


def get_embedding_config() -> Dict[str, Any]:
    return get_section("embedding")


def get_matching_config() -> Dict[str, Any]:
    return get_section("matching")


def get_api_config() -> Dict[str, Any]:
    return get_section("api")


def get_logging_config() -> Dict[str, Any]:
    return get_config().get("logging") or {}


def get_server_config() -> Dict[str, Any]:
    """
    Host and port for the API server, parsed from api.base_url.

    Returns:
        {"host": str, "port": int}
    """
    base_url = get_api_config().get("base_url", "http://localhost:8000")

    host = "0.0.0.0"
    port = 8000

    try:
        url_part = base_url.split("//")[-1]
        if ":" in url_part:
            host_part, port_str = url_part.rsplit(":", 1)
            port = int(port_str.rstrip("/"))
            if host_part != "localhost":
                host = host_part
    except (ValueError, IndexError):
        pass

    return {"host": host, "port": port}
