"""Package path detection - works regardless of working directory."""

from __future__ import annotations

from pathlib import Path
from functools import lru_cache


@lru_cache(maxsize=1)
def get_package_root() -> Path:
    """Get absolute path to the ``orchestrationCore`` package directory.

    Bundled configuration (agents.yaml, intents.yaml) lives inside the
    package, so it is resolved from this file's location rather than from
    the current working directory.

    Returns:
        Path: Absolute path to the package directory

    Example:
        >>> root = get_package_root()
        >>> agents_file = root / "config" / "agents.yaml"
    """
    # Go up: project_root.py -> config/ -> orchestrationCore/
    package_root = Path(__file__).resolve().parent.parent

    if not (package_root / "config").is_dir():
        raise RuntimeError(
            f"Could not locate package root. Expected 'config' directory at {package_root}"
        )

    return package_root


def resolve_config_path(path: str | Path | None, default_name: str) -> Path:
    """Resolve a configuration file path.

    Args:
        path: Explicit path (absolute, or relative to the working directory);
              None selects the bundled default
        default_name: File name inside the bundled ``config`` directory

    Returns:
        Path: Absolute path

    Example:
        >>> resolve_config_path(None, "agents.yaml")
        PosixPath('.../orchestrationCore/config/agents.yaml')
    """
    if path:
        return Path(path).expanduser().resolve()
    return get_package_root() / "config" / default_name


__all__ = ["get_package_root", "resolve_config_path"]
