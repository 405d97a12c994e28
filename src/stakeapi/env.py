# src/stakeapi/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

_LOADED = False


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """
    Load a .env file into the process environment, once.

    Path rules:
        1) If dotenv_path arg provided, use it.
        2) Else if STAKEAPI_DOTENV_PATH is set, use that.
        3) Else default to ".env" in current working directory.

    Values already present in the environment win over the file.
    Returns True if a dotenv file was found AND loaded, else False.
    """
    global _LOADED
    if _LOADED:
        return False
    _LOADED = True

    path = Path(dotenv_path or os.getenv("STAKEAPI_DOTENV_PATH", ".env")).expanduser()
    if not path.is_file():
        return False

    from dotenv import load_dotenv

    return bool(load_dotenv(dotenv_path=str(path), override=False))


def reset_dotenv_state() -> None:
    """Forget that a .env file was loaded (tests reload under a fresh env)."""
    global _LOADED
    _LOADED = False
