"""Shared fixtures for the profile manager tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from openvpn_connect_profiles.core.errors import CredentialNotFoundError, StoreWriteError


def _dumps(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class DummyCredentialStore:
    """In-memory stand-in for the OS keyring."""

    def __init__(self, fail_on: Optional[str] = None, fail_delete_on: Optional[str] = None) -> None:
        self.secrets: Dict[str, str] = {}
        self.deleted: List[str] = []
        self.fail_on = fail_on
        self.fail_delete_on = fail_delete_on

    def set_secret(self, account: str, blob: str) -> None:
        if account == self.fail_on:
            raise StoreWriteError(f"refused {account}")
        self.secrets[account] = blob

    def get_secret(self, account: str) -> Optional[str]:
        return self.secrets.get(account)

    def delete_secret(self, account: str) -> None:
        if account == self.fail_delete_on:
            raise StoreWriteError(f"refused to delete {account}")
        self.deleted.append(account)
        if account not in self.secrets:
            raise CredentialNotFoundError(account)
        del self.secrets[account]

    def list_accounts(self) -> List[str]:
        return sorted(self.secrets)


def build_config_text(profiles: Optional[dict] = None) -> str:
    """Return a config.json body shaped like the one OpenVPN Connect writes."""

    status = {"connectionStatus": "DISCONNECTED", "profiles": profiles or {}, "lastProfile": "café"}
    root = {
        "settings": _dumps({"theme": "dark", "launchOptions": "none"}),
        "status": _dumps(status),
        "_persist": _dumps({"version": -1, "rehydrated": True}),
    }
    return _dumps({"persist:root": _dumps(root), "windowBounds": "{\"width\":800}"})


@pytest.fixture()
def store() -> DummyCredentialStore:
    return DummyCredentialStore()


@pytest.fixture()
def config_path(tmp_path) -> Path:
    """A seeded config.json with no profiles and an empty profile folder."""

    path = tmp_path / "OpenVPN Connect" / "config.json"
    path.parent.mkdir()
    (path.parent / "profiles").mkdir()
    path.write_text(build_config_text(), encoding="utf-8")
    return path


@pytest.fixture()
def profile_dir(tmp_path) -> Path:
    path = tmp_path / "sources"
    path.mkdir()
    return path


def read_profiles(config_path: Path) -> dict:
    outer = json.loads(config_path.read_text(encoding="utf-8"))
    root = json.loads(outer["persist:root"])
    status = json.loads(root["status"])
    return status["profiles"]


@pytest.fixture(name="read_profiles")
def read_profiles_fixture():
    return read_profiles


@pytest.fixture()
def write_profile(profile_dir):
    """Create a profile source file and return its path."""

    def _write(name: str, body: str) -> Path:
        path = profile_dir / name
        path.write_text(body, encoding="utf-8")
        return path

    return _write
