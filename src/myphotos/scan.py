from __future__ import annotations

import os
import re
import shlex
import stat
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

from .errors import ConfigError, MyPhotosError, ParseError, TransportError, TraversalError
from .filters import is_extension_allowed
from .model import LOCAL, REMOTE, Candidate, RemoteConfig

# find(1) expands the backslash escapes itself; keep them literal here.
LISTING_FORMAT = r"%f\t%s\t%p\n"

_SIZE_RE = re.compile(r"[0-9]+")


@dataclass
class ScanResult:
    origin: str
    root: str
    candidates: List[Candidate] = field(default_factory=list)
    filtered: int = 0
    errors: List[MyPhotosError] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.candidates)

    @property
    def skipped(self) -> int:
        return len(self.errors)


def scan_local(root: Path, extensions: Iterable[str]) -> ScanResult:
    """Walk `root` and return every regular file whose path passes the filter.

    Only a missing or unreadable root is fatal. Unreadable subdirectories,
    broken symlinks and failed stats are recorded in ``errors`` and the walk
    carries on.
    """
    root = Path(root)
    if not root.exists():
        raise ConfigError(f"scan root does not exist: {root}")
    if not root.is_dir():
        raise ConfigError(f"scan root is not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise ConfigError(f"scan root is not readable: {root}")

    exts = list(extensions)
    result = ScanResult(origin=LOCAL, root=os.path.abspath(root))

    def _onerror(e: OSError) -> None:
        result.errors.append(
            TraversalError(str(e.filename or root), e.strerror or str(e))
        )

    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        dirnames.sort()
        for name in sorted(filenames):
            p = os.path.join(dirpath, name)
            if not is_extension_allowed(p, exts):
                result.filtered += 1
                continue
            try:
                st = os.stat(p)
            except OSError as e:
                result.errors.append(TraversalError(p, e.strerror or str(e)))
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            try:
                # sqlite stores text as UTF-8; surrogate-escaped names cannot be kept.
                p.encode("utf-8")
            except UnicodeEncodeError:
                shown = os.fsencode(p).decode("utf-8", errors="backslashreplace")
                result.errors.append(TraversalError(shown, "undecodable file name"))
                continue
            result.candidates.append(
                Candidate(
                    origin=LOCAL,
                    path=os.path.abspath(p),
                    filename=name,
                    size=int(st.st_size),
                )
            )

    result.candidates.sort(key=lambda c: c.path)
    return result


def remote_listing_command(host: str, root: str, cfg: RemoteConfig) -> List[str]:
    # ssh joins its trailing args into one string for the remote shell.
    remote = f"find {shlex.quote(root)} -type f -printf {shlex.quote(LISTING_FORMAT)}"
    return [cfg.ssh_bin, *cfg.ssh_args, host, remote]


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    return str(v)


def run_remote_listing(host: str, root: str, cfg: RemoteConfig) -> bytes:
    """Run the listing command and return its raw stdout.

    Raises `TransportError` on a missing ssh binary, timeout, non-zero exit,
    or any stderr output. Partial output is never returned.
    """
    cmd = remote_listing_command(host, root, cfg)
    try:
        proc = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            timeout=cfg.timeout_s,
        )
    except FileNotFoundError as e:
        raise TransportError(f"ssh not found: {cfg.ssh_bin}") from e
    except subprocess.TimeoutExpired as e:
        raise TransportError(
            f"remote listing on {host} timed out after {cfg.timeout_s:g}s",
            stderr=_as_text(e.stderr).strip(),
        ) from e
    except OSError as e:
        raise TransportError(f"ssh exec error: {e}") from e

    stderr = _as_text(proc.stderr).strip()
    if proc.returncode != 0:
        raise TransportError(
            f"remote listing on {host} failed (exit {proc.returncode})", stderr=stderr
        )
    if stderr:
        raise TransportError(f"remote listing on {host} reported errors", stderr=stderr)
    out = proc.stdout or b""
    return out.encode("utf-8") if isinstance(out, str) else out


def _decoded_lines(text: Union[str, bytes]) -> Iterable[tuple[int, str, bool]]:
    if isinstance(text, str):
        for lineno, line in enumerate(text.splitlines(), start=1):
            yield lineno, line, True
        return
    for lineno, raw in enumerate(text.splitlines(), start=1):
        try:
            yield lineno, raw.decode("utf-8"), True
        except UnicodeDecodeError:
            yield lineno, raw.decode("utf-8", errors="replace"), False


def parse_listing(
    text: Union[str, bytes], extensions: Iterable[str], *, root: str = ""
) -> ScanResult:
    """Parse ``name<TAB>size<TAB>path`` lines into remote candidates.

    Bytes are decoded one line at a time. Malformed or undecodable lines are
    recorded as `ParseError` and skipped; blank lines are ignored.
    """
    exts = list(extensions)
    result = ScanResult(origin=REMOTE, root=root)

    for lineno, line, decoded in _decoded_lines(text):
        if not decoded:
            result.errors.append(ParseError(lineno, line, "line is not valid UTF-8"))
            continue
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) != 3:
            result.errors.append(
                ParseError(lineno, line, f"expected 3 fields, got {len(parts)}")
            )
            continue
        name, size_s, full_path = parts
        if not _SIZE_RE.fullmatch(size_s):
            result.errors.append(ParseError(lineno, line, "size is not an integer"))
            continue
        if not name or not full_path:
            result.errors.append(ParseError(lineno, line, "empty name or path"))
            continue
        if not is_extension_allowed(full_path, exts):
            result.filtered += 1
            continue
        result.candidates.append(
            Candidate(origin=REMOTE, path=full_path, filename=name, size=int(size_s))
        )

    return result


def scan_remote(
    host: str,
    root: str,
    extensions: Iterable[str],
    cfg: Optional[RemoteConfig] = None,
) -> ScanResult:
    output = run_remote_listing(host, root, cfg or RemoteConfig())
    return parse_listing(output, extensions, root=f"{host}:{root}")
