"""Data structures describing OpenVPN Connect profiles."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .identity import PROFILE_TYPE, ProfileIdentity


@dataclass
class ProfileRecord:
    """One profile entry as OpenVPN Connect stores it under ``status.profiles``."""

    identity: ProfileIdentity
    content: str
    file_path: str
    username: str
    saved_password: bool = False
    last_modified: Optional[int] = None

    @property
    def name(self) -> str:
        return self.identity.canonical_name

    def to_dict(self) -> Dict[str, Any]:
        host = self.identity.host
        last_modified = self.last_modified if self.last_modified is not None else int(time.time() * 1000)
        return {
            "config": {
                "content": self.content,
            },
            "error": False,
            "filePath": self.file_path,
            "hostname": host,
            "lastModified": last_modified,
            "mergedConfig": {
                "basename": self.file_path,
                "errorText": "",
                "profileContent": self.content,
                "refPathList": [],
                "status": "MERGE_SUCCESS",
            },
            "name": self.name,
            "privateKeyPassword": False,
            # Server selection and negotiation fields are placeholders the
            # host expects to find; nothing here reads them.
            "profileConfig": {
                "allowPasswordSave": True,
                "autologin": False,
                "challengeQuestion": "",
                "error": False,
                "externalPki": True,
                "friendlyName": "",
                "message": "",
                "privateKeyPasswordRequired": False,
                "profileName": host,
                "remoteHost": host,
                "remotePort": self.identity.port,
                "remoteProto": "udp",
                "serverList": [],
                "staticChallenge": "",
                "staticChallengeEcho": False,
                "userlockedUsername": "",
            },
            "profileDisplayName": self.identity.display_name,
            "profileName": self.name,
            "profileType": PROFILE_TYPE,
            "savedPassword": self.saved_password,
            "selectedServer": {
                "server": None,
            },
            "username": self.username,
        }


@dataclass
class ProfileSummary:
    """Read-only view of a stored profile used for listings."""

    name: str
    host: str
    port: str
    username: str
    saved_password: bool

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ProfileSummary":
        profile_config = data.get("profileConfig") or {}
        return cls(
            name=name,
            host=data.get("hostname") or profile_config.get("remoteHost", ""),
            port=str(profile_config.get("remotePort", "")),
            username=data.get("username") or "",
            saved_password=bool(data.get("savedPassword", False)),
        )


ProfileMap = Dict[str, Dict[str, Any]]
