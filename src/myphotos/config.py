from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .model import MyPhotosConfig, RemoteConfig, StoreConfig
from .utils import as_path, default_config_dir

try:
    import tomllib  # py311+
except ModuleNotFoundError as exc:  # pragma: no cover
    raise SystemExit("Python 3.11+ required (missing tomllib).") from exc

CONFIG_FILE_NAME = "extensions.toml"
DB_FILE_NAME = "db.sqlite"
DEFAULT_EXTENSIONS = [".jpg", ".JPG", ".ARW", ".mp4", ".MP4"]

DEFAULT_CONFIG_TEXT = """\
# File suffixes that count as media. Matching is case-sensitive and applies
# to the end of the full path.
extensions = [{extensions}]

# [store]
# db_path = "~/.config/myphotos/db.sqlite"

# [remote]
# ssh_bin = "ssh"
# ssh_args = ["-o", "BatchMode=yes"]
# timeout_s = 600
"""


def default_config_path() -> Path:
    return default_config_dir() / CONFIG_FILE_NAME


def default_db_path() -> Path:
    return default_config_dir() / DB_FILE_NAME


def load_toml(path: Path) -> Dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    try:
        return tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config is not valid UTF-8: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"TOML parse error in {path}: {e}") from e


def write_default_config(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    exts = ", ".join(f'"{e}"' for e in DEFAULT_EXTENSIONS)
    path.write_text(DEFAULT_CONFIG_TEXT.format(extensions=exts), encoding="utf-8")
    return path


def _optional_table(root: Dict[str, Any], table: str) -> Dict[str, Any]:
    v = root.get(table, {})
    if not isinstance(v, dict):
        raise ConfigError(f"[{table}] must be a table")
    return v


def _as_list_str(d: Dict[str, Any], key: str, where: str) -> List[str]:
    v = d.get(key)
    if isinstance(v, list) and all(isinstance(x, str) for x in v):
        return list(v)
    raise ConfigError(f"Expected list of strings for '{where}', got: {v!r}")


def _optional_str(d: Dict[str, Any], key: str, default: str, where: str) -> str:
    if key not in d:
        return default
    v = d.get(key)
    if isinstance(v, str) and v != "":
        return v
    raise ConfigError(f"Expected non-empty string for '{where}', got: {v!r}")


def parse_config(
    root: Dict[str, Any], *, db_path_default: Optional[Path] = None
) -> MyPhotosConfig:
    # ---- extensions
    if "extensions" not in root:
        raise ConfigError("Missing required config value: extensions")
    extensions = _as_list_str(root, "extensions", "extensions")
    extensions = [e for e in extensions if e.strip()]
    if not extensions:
        raise ConfigError("extensions must list at least one suffix")

    # ---- store
    store_tbl = _optional_table(root, "store")
    if "db_path" in store_tbl:
        db_path = as_path(_optional_str(store_tbl, "db_path", "", "store.db_path"))
    else:
        db_path = db_path_default or default_db_path()

    # ---- remote
    remote_tbl = _optional_table(root, "remote")
    ssh_args: List[str] = []
    if "ssh_args" in remote_tbl:
        ssh_args = _as_list_str(remote_tbl, "ssh_args", "remote.ssh_args")

    timeout_s = remote_tbl.get("timeout_s", 600)
    if isinstance(timeout_s, bool) or not isinstance(timeout_s, (int, float)):
        raise ConfigError(
            f"Expected number for 'remote.timeout_s', got: {type(timeout_s).__name__}"
        )
    if timeout_s <= 0:
        raise ConfigError("remote.timeout_s must be greater than 0")

    remote_cfg = RemoteConfig(
        ssh_bin=_optional_str(remote_tbl, "ssh_bin", "ssh", "remote.ssh_bin"),
        ssh_args=ssh_args,
        timeout_s=float(timeout_s),
    )

    return MyPhotosConfig(
        extensions=extensions,
        store=StoreConfig(db_path=db_path),
        remote=remote_cfg,
    )


def load_or_create_config(path: Optional[Path] = None) -> MyPhotosConfig:
    """Load the config at `path`, writing the default file first if absent.

    The default database lives next to the config file.
    """
    cfg_path = path or default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
        print(f"[myphotos] created default config at {cfg_path}", flush=True)
    return parse_config(
        load_toml(cfg_path), db_path_default=cfg_path.parent / DB_FILE_NAME
    )
