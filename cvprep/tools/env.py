import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional

from cvprep.errors import ConfigurationError
from cvprep.utils import Pathlike

INSTALL_HINTS = {
    "ffmpeg": "sudo apt-get install ffmpeg",
    "lhotse": "pip install lhotse",
}


def require_executables(names: Iterable[str]) -> None:
    """Raises ConfigurationError listing every executable from ``names`` that is not on PATH."""
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        hints = "\n".join(
            f"  {INSTALL_HINTS[name]}" for name in missing if name in INSTALL_HINTS
        )
        raise ConfigurationError(
            f"This pipeline requires the following programs on PATH: {missing}"
            + (f"\nPlease install them first:\n{hints}" if hints else "")
        )


def tool_env(
    recipe_dir: Pathlike, extra: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """
    Environment for the recipe scripts: the recipe directory is put on PYTHONPATH
    so that ``local/`` and ``shared/`` helpers can import each other.
    """
    env = dict(os.environ)
    recipe_dir = str(Path(recipe_dir).resolve())
    python_path = env.get("PYTHONPATH", "")
    if recipe_dir not in python_path.split(os.pathsep):
        env["PYTHONPATH"] = (
            recipe_dir + os.pathsep + python_path if python_path else recipe_dir
        )
    if extra:
        env.update(extra)
    return env


def python_executable() -> str:
    exe = sys.executable or shutil.which("python3")
    if not exe:
        logging.warning("Could not determine the Python interpreter; using 'python3'.")
        return "python3"
    return exe
