"""Environment variable utilities for dataferry.

Projects keep their profiles in a ``profiles`` directory; a ``.env`` file next
to it is loaded into the process environment before profiles are read.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from dataferry.logging import get_logger

logger = get_logger(__name__)


def find_project_root(start_path: Optional[str] = None) -> Optional[Path]:
    """Find the project root by looking for a profiles directory.

    Args:
    ----
        start_path: Path to start searching from (defaults to current directory)

    Returns:
    -------
        Path to the project root, or None if not found

    """
    current = Path(start_path or os.getcwd()).resolve()

    for parent in [current, *current.parents]:
        if (parent / "profiles").is_dir():
            logger.debug(f"Found project root at: {parent}")
            return parent

    logger.debug("No project root found")
    return None


def load_dotenv_file(project_root: Path) -> bool:
    """Load ``.env`` from the project root if it exists."""
    env_file = Path(project_root) / ".env"
    if not env_file.exists():
        logger.debug(f"No .env file found at: {env_file}")
        return False

    loaded = load_dotenv(env_file, override=True)
    if loaded:
        logger.debug(f"Loaded environment variables from: {env_file}")
    return loaded


def setup_environment(start_path: Optional[str] = None) -> bool:
    """Load the project's ``.env`` file, if there is a project.

    Returns:
    -------
        True if a .env file was found and loaded, False otherwise

    """
    project_root = find_project_root(start_path)
    if project_root is None:
        logger.debug("No project found, skipping .env file loading")
        return False
    return load_dotenv_file(project_root)
