from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

LOCAL = "local"
REMOTE = "remote"
ORIGINS = (LOCAL, REMOTE)


@dataclass(frozen=True)
class StoreConfig:
    db_path: Path


@dataclass(frozen=True)
class RemoteConfig:
    ssh_bin: str = "ssh"
    ssh_args: List[str] = field(default_factory=list)
    timeout_s: float = 600.0


@dataclass(frozen=True)
class MyPhotosConfig:
    extensions: List[str]
    store: StoreConfig
    remote: RemoteConfig = field(default_factory=RemoteConfig)


@dataclass(frozen=True)
class Candidate:
    origin: str  # "local" | "remote"
    path: str
    filename: str
    size: int


@dataclass(frozen=True)
class Identity:
    filename: str
    size: int


@dataclass(frozen=True)
class InventoryRecord:
    filename: str
    size: int
    local_path: Optional[str] = None
    remote_path: Optional[str] = None

    @property
    def identity(self) -> Identity:
        return Identity(self.filename, self.size)

    @property
    def seen_locally(self) -> bool:
        return bool(self.local_path)

    @property
    def seen_remotely(self) -> bool:
        return bool(self.remote_path)
