"""Identity scheme: which observations refer to the same logical file.

Files are keyed by ``(filename, size)``. Two files with the same base name
and byte size are treated as one logical file wherever they live in either
tree, so a photo moved to another folder on the backup host still counts as
backed up. Unrelated files that happen to share name and size collide; that
is accepted.

The scheme name is written into every store. A store created under a
different scheme cannot be reused and has to be rebuilt from fresh scans.
"""

from __future__ import annotations

from .model import Candidate, Identity

IDENTITY_SCHEME = "name+size"


def identity_for(candidate: Candidate) -> Identity:
    if candidate.size < 0:
        raise ValueError(f"negative size for {candidate.path}: {candidate.size}")
    return Identity(filename=candidate.filename, size=int(candidate.size))
