"""Derive profile names and endpoints from OpenVPN profile files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from .errors import MalformedProfileError

DEFAULT_PORT = "1194"
PROFILE_TYPE = "PC"

# ``remote <host> [port] [proto]`` at the start of a line. Directives such as
# ``remote-cert-tls`` need whitespace after ``remote`` and never match.
_REMOTE_RE = re.compile(r"^[ \t]*remote[ \t]+(\S+)(?:[ \t]+(\d+))?", re.MULTILINE)


def extract_remote(content: str) -> Tuple[str, str]:
    """Return ``(host, port)`` from the first ``remote`` directive in ``content``."""

    match = _REMOTE_RE.search(content)
    if not match:
        raise MalformedProfileError("no 'remote' directive found")
    host, port = match.group(1), match.group(2)
    return host, port or DEFAULT_PORT


@dataclass(frozen=True)
class ProfileIdentity:
    """Naming information for one imported profile file."""

    host: str
    port: str
    basename: str

    @property
    def display_name(self) -> str:
        return f"{self.host} {self.basename}"

    @property
    def canonical_name(self) -> str:
        return f"{PROFILE_TYPE} {self.display_name}"

    @classmethod
    def from_file(cls, path: Path, content: str) -> "ProfileIdentity":
        try:
            host, port = extract_remote(content)
        except MalformedProfileError as exc:
            raise MalformedProfileError(f"{path}: {exc}") from exc
        return cls(host=host, port=port, basename=Path(path).stem)
