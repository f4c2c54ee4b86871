from __future__ import annotations

from typing import Iterable


def is_extension_allowed(path: str, extensions: Iterable[str]) -> bool:
    # Case-sensitive suffix match on the whole path, not just the final segment.
    return any(path.endswith(ext) for ext in extensions if ext)
