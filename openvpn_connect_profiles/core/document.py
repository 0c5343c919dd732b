"""Reading and writing the OpenVPN Connect ``config.json`` state file.

The file is a JSON object whose ``persist:root`` value is itself a JSON
string. Inside that, ``status`` is another JSON string, and only inside that
is ``profiles`` a real object. Every layer is decoded on load and encoded
again, inside-out, on save. Keys other than ``profiles`` are carried through
untouched.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict

from ..utils.logging import get_logger
from ..utils.paths import profile_folder
from .errors import ConfigNotFoundError, ConfigParseError, FileIOError
from .profile import ProfileMap

logger = get_logger("document")

ROOT_KEY = "persist:root"
STATUS_KEY = "status"
PROFILES_KEY = "profiles"

_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def _dumps(value: Any) -> str:
    # Same shape as JSON.stringify, which is what the host writes. json.loads
    # joins escaped surrogate pairs, so any surrogate left is unpaired and is
    # written back as an escape.
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return _LONE_SURROGATE.sub(lambda match: "\\u%04x" % ord(match.group()), text)


def _decode_layer(raw: Any, label: str, path: Path) -> Dict[str, Any]:
    if not isinstance(raw, str):
        raise ConfigParseError(f"{path}: '{label}' is missing or not a string")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"{path}: '{label}' is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ConfigParseError(f"{path}: '{label}' does not hold a JSON object")
    return value


class ConfigDocument:
    """In-memory copy of the three JSON layers of the config file."""

    def __init__(self, path: Path, outer: Dict[str, Any], root: Dict[str, Any], status: Dict[str, Any]) -> None:
        self.path = Path(path)
        self._outer = outer
        self._root = root
        self._status = status
        profiles = status.get(PROFILES_KEY)
        if profiles is None:
            profiles = {}
        if not isinstance(profiles, dict):
            raise ConfigParseError(f"{self.path}: '{PROFILES_KEY}' is not a JSON object")
        self._profiles: ProfileMap = profiles

    @classmethod
    def load(cls, path: Path) -> "ConfigDocument":
        path = Path(path)
        if not path.is_file():
            raise ConfigNotFoundError(f"Config file {path} does not exist")
        try:
            with path.open("r", encoding="utf-8") as fh:
                outer = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(f"{path}: not valid JSON: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ConfigParseError(f"{path}: not UTF-8 text: {exc}") from exc
        except OSError as exc:
            raise FileIOError(f"Failed to read {path}: {exc}") from exc
        if not isinstance(outer, dict):
            raise ConfigParseError(f"{path}: top level is not a JSON object")
        root = _decode_layer(outer.get(ROOT_KEY), ROOT_KEY, path)
        status = _decode_layer(root.get(STATUS_KEY), STATUS_KEY, path)
        document = cls(path, outer, root, status)
        logger.debug("Loaded %s with %d profile(s)", path, len(document.profiles))
        return document

    @property
    def profiles(self) -> ProfileMap:
        """Mutable mapping of profile name to profile record."""
        return self._profiles

    @property
    def profile_folder(self) -> Path:
        return profile_folder(self.path)

    def encode(self) -> str:
        status = dict(self._status)
        status[PROFILES_KEY] = self._profiles
        root = dict(self._root)
        root[STATUS_KEY] = _dumps(status)
        outer = dict(self._outer)
        outer[ROOT_KEY] = _dumps(root)
        return _dumps(outer)

    def save(self, path: Path | None = None) -> None:
        """Write the document, replacing the destination only once fully encoded."""

        target = Path(path) if path is not None else self.path
        try:
            payload = self.encode().encode("utf-8")
        except UnicodeEncodeError as exc:
            raise FileIOError(f"Failed to encode {target}: {exc}") from exc
        tmp_path = target.with_name(f"{target.name}.tmp")
        backup_path = target.with_name(f"{target.stem}.backup{target.suffix}")
        try:
            with tmp_path.open("wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            if target.exists():
                backup_path.write_bytes(target.read_bytes())
            tmp_path.replace(target)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise FileIOError(f"Failed to write {target}: {exc}") from exc
        logger.info("Saved %s with %d profile(s)", target, len(self._profiles))
