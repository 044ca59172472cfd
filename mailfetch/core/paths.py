"""
Centralized path configuration for mailfetch.

Supports:
- Working-directory files: ./emails.txt, ./hosts.json, ./proxies.txt
- Local config: ./config/*
- External overlay: CONFIG_DIR=/path/to/private/config
- Fallback to .example files when the real file is missing

Usage:
    from mailfetch.core.paths import get_config_path

    hosts_path = get_config_path("hosts.json")
"""
import os
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# From mailfetch/core/paths.py -> mailfetch/core -> mailfetch -> repo root
_REPO_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG_DIR = _REPO_ROOT / "config"

CONFIG_DIR = Path(os.getenv("CONFIG_DIR", str(_DEFAULT_CONFIG_DIR)))


def _example_name(filename: str) -> str:
    path = Path(filename)
    return f"{path.stem}.example{path.suffix}"


def get_config_path(filename: str, required: bool = False) -> Optional[Path]:
    """
    Resolve a config file path with fallback logic.

    Resolution order:
    1. filename as given (absolute, or relative to the working directory)
    2. CONFIG_DIR / filename
    3. CONFIG_DIR / <stem>.example<suffix>
    4. Default config dir / filename (and its example), if CONFIG_DIR is overridden

    Args:
        filename: Config filename (e.g., "hosts.json")
        required: If True, raise FileNotFoundError when not found

    Returns:
        Path to config file, or None if not found and not required

    Raises:
        FileNotFoundError: If required=True and file not found
    """
    name = Path(filename).name
    candidates = [Path(filename), CONFIG_DIR / name, CONFIG_DIR / _example_name(name)]

    if CONFIG_DIR != _DEFAULT_CONFIG_DIR:
        candidates.append(_DEFAULT_CONFIG_DIR / name)
        candidates.append(_DEFAULT_CONFIG_DIR / _example_name(name))

    for path in candidates:
        if path.exists():
            logger.debug(f"Config '{filename}' resolved to: {path}")
            return path

    if required:
        searched = [str(c) for c in candidates]
        raise FileNotFoundError(
            f"Required config file '{filename}' not found.\n"
            f"Searched: {searched}"
        )

    logger.debug(f"Config '{filename}' not found (optional)")
    return None


def get_repo_root() -> Path:
    """Get the repository root directory."""
    return _REPO_ROOT
