"""Locate and load the ``.env`` file used by the CLI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

EXAMPLE_ENV_FILE = Path(__file__).resolve().parent.parent / ".env.example"


def find_env_file(cwd: Path, config_env_file: Path) -> Optional[Path]:
    """The project-local ``.env`` wins over the per-user one."""
    for candidate in (cwd / ".env", config_env_file):
        if candidate.is_file():
            return candidate
    return None


def load_config(
    *,
    config_dir: Path,
    config_env_file: Path,
    cwd: Path,
    load_env: Callable[[Path], bool],
    copy_file: Callable[[Path, Path], str],
    example_file: Path = EXAMPLE_ENV_FILE,
) -> Optional[Path]:
    """Load settings into the environment and return the file used.

    When neither ``./.env`` nor ``config_env_file`` exists, the bundled
    ``.env.example`` is copied to ``config_env_file`` first so users have a
    file to edit.
    """
    env_file = find_env_file(cwd, config_env_file)

    if env_file is None and example_file.is_file():
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            copy_file(example_file, config_env_file)
        except OSError as exc:
            logging.debug("Could not create %s: %s", config_env_file, exc)
            return None
        logging.info("Created %s; set DOCUPRINT_OUTPUT_DIR or credentials there", config_env_file)
        env_file = config_env_file

    if env_file is not None:
        load_env(env_file)
    return env_file
