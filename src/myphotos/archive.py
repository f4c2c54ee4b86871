from __future__ import annotations

import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from .report import missing_from_remote
from .store import InventoryStore


@dataclass(frozen=True)
class ArchiveResult:
    added: int
    skipped: int
    details: List[Dict[str, Any]]


def _entry_name(path: Path, root: Path) -> str | None:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return None


def export_missing(
    store: InventoryStore, archive_path: Path, root: Path
) -> ArchiveResult:
    """Zip every file that is missing from the remote side.

    Entry names are relative to `root` with forward slashes. Files outside
    `root` or that cannot be read are skipped; the archive is still written.
    """
    root = Path(os.path.abspath(root))
    archive_path = Path(archive_path)
    report = missing_from_remote(store)

    added = 0
    skipped = 0
    details: List[Dict[str, Any]] = []

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_STORED) as zf:
        for local_path in report.paths:
            src = Path(local_path)
            name = _entry_name(src, root)
            if name is None:
                skipped += 1
                details.append(
                    {"src": local_path, "action": "skip", "reason": "outside_root"}
                )
                continue

            try:
                # Open first so an unreadable file never leaves a partial entry.
                with src.open("rb") as inf:
                    info = zipfile.ZipInfo.from_file(src, arcname=name)
                    with zf.open(info, "w") as outf:
                        while True:
                            chunk = inf.read(1024 * 1024)
                            if not chunk:
                                break
                            outf.write(chunk)
            except OSError as e:
                skipped += 1
                details.append(
                    {
                        "src": local_path,
                        "action": "skip",
                        "reason": f"unreadable: {type(e).__name__}: {e}",
                    }
                )
                continue

            added += 1
            details.append({"src": local_path, "entry": name, "action": "added"})

    return ArchiveResult(added=added, skipped=skipped, details=details)
