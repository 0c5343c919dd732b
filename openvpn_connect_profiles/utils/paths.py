"""Helpers for locating the OpenVPN Connect config file and profile sources."""

from __future__ import annotations

import glob
import os
import sys
from pathlib import Path
from typing import List

HOST_APP_DIR_NAME = "OpenVPN Connect"
CONFIG_FILE_NAME = "config.json"
PROFILE_FOLDER_NAME = "profiles"
CONFIG_ENV_VAR = "OPENVPN_CONNECT_CONFIG"


def host_data_dir() -> Path:
    """Return the directory where OpenVPN Connect keeps its persisted state."""
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / HOST_APP_DIR_NAME


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return expand_path(override)
    return host_data_dir() / CONFIG_FILE_NAME


def profile_folder(config_path: Path) -> Path:
    """Folder next to the config file where imported ``.ovpn`` files live."""
    return Path(config_path).resolve().parent / PROFILE_FOLDER_NAME


def expand_path(path: str) -> Path:
    """Expand environment variables and user references in ``path``."""
    return Path(os.path.expandvars(os.path.expanduser(path))).resolve()


def expand_profile_glob(pattern: str) -> List[Path]:
    """Resolve ``pattern`` to a sorted list of existing profile files."""
    matches = glob.glob(os.path.expanduser(pattern), recursive=True)
    return sorted({Path(match).resolve() for match in matches if Path(match).is_file()})
