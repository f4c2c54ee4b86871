from __future__ import annotations

import os
import sqlite3
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .errors import StorageError
from .store import InventoryStore

RULE = "-" * 57

_MISSING_SQL = """
SELECT local_path FROM photos
WHERE local_path IS NOT NULL AND local_path != ''
  AND (remote_path IS NULL OR remote_path = '')
ORDER BY local_path
"""

# A local-only row and a remote-only row with the same name. Their sizes
# differ by construction, otherwise they would be one row.
_MISMATCH_SQL = """
SELECT p1.local_path, p1.size, p2.remote_path, p2.size
FROM photos p1
JOIN photos p2 ON p1.filename = p2.filename
WHERE p1.local_path IS NOT NULL AND p1.local_path != ''
  AND (p1.remote_path IS NULL OR p1.remote_path = '')
  AND p2.remote_path IS NOT NULL AND p2.remote_path != ''
  AND (p2.local_path IS NULL OR p2.local_path = '')
ORDER BY p1.local_path, p2.remote_path
"""


@dataclass(frozen=True)
class MissingReport:
    paths: List[str]

    @property
    def count(self) -> int:
        return len(self.paths)

    def by_directory(self) -> List[Tuple[str, int]]:
        return group_by_directory(self.paths)


@dataclass(frozen=True)
class Mismatch:
    local_path: str
    local_size: int
    remote_path: str
    remote_size: int


@dataclass(frozen=True)
class MismatchReport:
    pairs: List[Mismatch]

    @property
    def count(self) -> int:
        return len(self.pairs)


def _query(store: InventoryStore, sql: str) -> List[sqlite3.Row]:
    try:
        return store.conn.execute(sql).fetchall()
    except sqlite3.Error as e:
        raise StorageError(f"Report query failed: {e}", cause=e) from e


def missing_from_remote(store: InventoryStore) -> MissingReport:
    """Files seen locally that the remote scan never reported."""
    return MissingReport(paths=[r[0] for r in _query(store, _MISSING_SQL)])


def size_mismatches(store: InventoryStore) -> MismatchReport:
    """Same filename on both sides, but never merged because the sizes differ."""
    rows = _query(store, _MISMATCH_SQL)
    return MismatchReport(
        pairs=[
            Mismatch(
                local_path=r[0],
                local_size=int(r[1]),
                remote_path=r[2],
                remote_size=int(r[3]),
            )
            for r in rows
        ]
    )


def group_by_directory(paths: Iterable[str]) -> List[Tuple[str, int]]:
    counts = Counter(os.path.dirname(p) for p in paths)
    return sorted(counts.items())


def render_missing(report: MissingReport, *, verbose: bool = False) -> List[str]:
    lines: List[str] = []
    if verbose:
        lines.append(
            "--- Files on Local Machine but MISSING from Remote (Backup needed) ---"
        )
        lines.extend(report.paths)
    else:
        lines.append("--- Summary of Missing Files (by Directory) ---")
        lines.extend(f"{d}: {n}" for d, n in report.by_directory())
    lines.append(RULE)
    lines.append(f"Total Missing from Remote: {report.count}")
    if not verbose:
        lines.append("(Use -v or --verbose to see full file list)")
    return lines


def render_mismatches(report: MismatchReport) -> List[str]:
    lines = ["--- Files with Name Match but Size Mismatch ---"]
    for m in report.pairs:
        lines.append(f"Local:  {m.local_path} ({m.local_size} bytes)")
        lines.append(f"Remote: {m.remote_path} ({m.remote_size} bytes)")
        lines.append("")
    lines.append(RULE)
    lines.append(f"Total Mismatches: {report.count}")
    return lines
