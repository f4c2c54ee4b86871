from __future__ import annotations

import os
from pathlib import Path


def as_path(s: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(s))
    return Path(expanded).resolve()


def default_config_dir() -> Path:
    return Path.home() / ".config" / "myphotos"
