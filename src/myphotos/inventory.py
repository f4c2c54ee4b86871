from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .identity import identity_for
from .model import LOCAL, REMOTE, Candidate
from .scan import ScanResult
from .store import InventoryStore

PROGRESS_EVERY = 100


@dataclass(frozen=True)
class MergeResult:
    origin: str
    merged: int
    filtered: int
    skipped: int


def merge(store: InventoryStore, candidate: Candidate) -> None:
    ident = identity_for(candidate)
    if candidate.origin == LOCAL:
        store.merge_local(ident, candidate.path)
    elif candidate.origin == REMOTE:
        store.merge_remote(ident, candidate.path)
    else:
        raise ValueError(f"unknown origin: {candidate.origin!r}")


def merge_scan(
    store: InventoryStore,
    scan: ScanResult,
    *,
    progress: Optional[Callable[[int], None]] = None,
) -> MergeResult:
    """Merge every candidate of one scan inside a single transaction.

    A `StorageError` rolls back this scan's batch and propagates; rows
    committed by earlier scans are untouched.
    """
    merged = 0
    with store.transaction():
        for cand in scan.candidates:
            merge(store, cand)
            merged += 1
            if progress is not None and merged % PROGRESS_EVERY == 0:
                progress(merged)

    return MergeResult(
        origin=scan.origin,
        merged=merged,
        filtered=scan.filtered,
        skipped=scan.skipped,
    )
