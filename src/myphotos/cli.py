from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional

from .archive import export_missing
from .config import default_config_path, load_or_create_config
from .errors import ConfigError, StorageError, TransportError
from .inventory import merge_scan
from .model import MyPhotosConfig, StoreConfig
from .report import missing_from_remote, render_mismatches, render_missing, size_mismatches
from .scan import ScanResult, scan_local, scan_remote
from .store import InventoryStore
from .utils import as_path

EXIT_USAGE = 1
EXIT_CONFIG = 2
EXIT_SCAN = 3
EXIT_MERGE = 4
EXIT_REPORT = 5
EXIT_EXPORT = 6


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="myphotos",
        description="Track which media files exist locally versus on a remote backup host.",
    )
    p.add_argument(
        "--config",
        default=None,
        help=f"Path to config TOML (default: {default_config_path()}; created if missing).",
    )
    sub = p.add_subparsers(dest="command")

    add = sub.add_parser("add", help="Scan and add files to the database")
    add.add_argument("--path", required=True, help="The directory path to scan")
    add.add_argument(
        "--remote",
        default="",
        help="The remote server address (e.g. user@192.168.1.100). If empty, scans local.",
    )
    add.add_argument("--db", default=None, help="Path to the sqlite database file")
    add.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall timeout in seconds for the remote listing (overrides remote.timeout_s).",
    )

    rep = sub.add_parser("report", help="Generate a report of missing files")
    rep.add_argument("--db", default=None, help="Path to the sqlite database file")
    rep.add_argument(
        "-v", "--verbose", action="store_true", help="Show full list of files"
    )
    rep.add_argument(
        "--wrong-size",
        "--wrong_size",
        dest="wrong_size",
        action="store_true",
        help="Report files present on remote but with different size",
    )

    exp = sub.add_parser(
        "export", help="Zip all files missing from the remote into one archive"
    )
    exp.add_argument("--out", required=True, help="Path of the zip file to write")
    exp.add_argument(
        "--root",
        default=str(Path.home()),
        help="Archive entry names are made relative to this directory (default: home).",
    )
    exp.add_argument("--db", default=None, help="Path to the sqlite database file")

    sub.add_parser("help", help="Show this help message")
    return p


def _with_overrides(cfg: MyPhotosConfig, args: argparse.Namespace) -> MyPhotosConfig:
    db = getattr(args, "db", None)
    if db:
        cfg = dataclasses.replace(cfg, store=StoreConfig(db_path=as_path(str(db))))
    timeout = getattr(args, "timeout", None)
    if timeout is not None:
        if timeout <= 0:
            raise ConfigError("--timeout must be greater than 0")
        cfg = dataclasses.replace(
            cfg, remote=dataclasses.replace(cfg.remote, timeout_s=float(timeout))
        )
    return cfg


def _print_scan_warnings(scan: ScanResult) -> None:
    for i, err in enumerate(scan.errors, start=1):
        print(f"[myphotos] warning: skipped ({i}): {err}", file=sys.stderr)


def run_add(cfg: MyPhotosConfig, args: argparse.Namespace) -> int:
    try:
        if args.remote:
            print(
                f"[myphotos] scanning REMOTE [{args.remote}] at path [{args.path}]...",
                flush=True,
            )
            scan = scan_remote(args.remote, args.path, cfg.extensions, cfg.remote)
        else:
            print(f"[myphotos] scanning LOCAL path [{args.path}]...", flush=True)
            scan = scan_local(as_path(args.path), cfg.extensions)
    except (ConfigError, TransportError) as e:
        print(f"[myphotos] scan error: {e}", file=sys.stderr)
        return EXIT_SCAN

    _print_scan_warnings(scan)

    def _progress(n: int) -> None:
        print(f"\r[myphotos] processed {n} {scan.origin} files...", end="", flush=True)

    try:
        with InventoryStore.open(cfg.store.db_path) as store:
            result = merge_scan(store, scan, progress=_progress)
    except StorageError as e:
        print(f"\n[myphotos] merge error: {e}", file=sys.stderr)
        return EXIT_MERGE

    print(
        f"\n[myphotos] complete. Processed {result.merged} matching {result.origin} files "
        f"(filtered={result.filtered} skipped={result.skipped})."
    )
    return 0


def run_report(cfg: MyPhotosConfig, args: argparse.Namespace) -> int:
    db_path = cfg.store.db_path
    if not db_path.exists():
        print(
            f"[myphotos] warning: no inventory store at {db_path}; created an empty one "
            "(check --db, or run 'myphotos add' first)",
            file=sys.stderr,
        )
    try:
        with InventoryStore.open(db_path) as store:
            if store.count() == 0:
                print(
                    f"[myphotos] warning: inventory store {db_path} is empty",
                    file=sys.stderr,
                )
            if args.wrong_size:
                lines = render_mismatches(size_mismatches(store))
            else:
                lines = render_missing(missing_from_remote(store), verbose=args.verbose)
    except StorageError as e:
        print(f"[myphotos] report error: {e}", file=sys.stderr)
        return EXIT_REPORT

    for line in lines:
        print(line)
    return 0


def run_export(cfg: MyPhotosConfig, args: argparse.Namespace) -> int:
    out = as_path(str(args.out))
    try:
        with InventoryStore.open(cfg.store.db_path) as store:
            result = export_missing(store, out, as_path(str(args.root)))
    except (StorageError, OSError) as e:
        print(f"[myphotos] export error: {e}", file=sys.stderr)
        return EXIT_EXPORT

    for d in result.details:
        if d["action"] == "skip":
            print(f"[myphotos] warning: skipped {d['src']}: {d['reason']}", file=sys.stderr)
    print(f"[myphotos] export: added={result.added} skipped={result.skipped} -> {out}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return 0 if args.command == "help" else EXIT_USAGE

    try:
        cfg_path = as_path(str(args.config)) if args.config else None
        cfg = _with_overrides(load_or_create_config(cfg_path), args)
    except ConfigError as e:
        print(f"[myphotos] config error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "add":
        return run_add(cfg, args)
    if args.command == "report":
        return run_report(cfg, args)
    return run_export(cfg, args)
