"""Secure password storage shared with OpenVPN Connect.

OpenVPN Connect reads saved passwords through keytar, so entries have to be
written under keytar's naming:

* Windows credential vault: generic credential with target
  ``"<service>/<account>"`` holding the UTF-8 bytes of the secret.
* Secret Service (Linux): item with ``service`` and ``account`` attributes.
* macOS keychain: generic password keyed by service and account, which is
  what python-keyring already writes.

Entries written by python-keyring's own Windows and Secret Service backends
(``<account>@<service>`` targets, ``username`` attributes) are still found
when listing and deleting.
"""

from __future__ import annotations

import sys
from typing import List, Optional, Protocol

import keyring
from keyring.errors import KeyringError, NoKeyringError, PasswordDeleteError

from ..utils.logging import get_logger
from .errors import CredentialNotFoundError, StoreUnavailableError, StoreWriteError

logger = get_logger("credentials")

SERVICE_NAME = "org.openvpn.client."
ERROR_NOT_FOUND = 1168
SECRET_SCHEMA = "org.freedesktop.Secret.Generic"


class CredentialStore(Protocol):
    """Operations the synchronizer needs from a secret store."""

    def set_secret(self, account: str, blob: str) -> None: ...

    def get_secret(self, account: str) -> Optional[str]: ...

    def delete_secret(self, account: str) -> None: ...

    def list_accounts(self) -> List[str]: ...


def default_credential_store() -> CredentialStore:
    """Return the store matching how OpenVPN Connect saves passwords on this OS."""
    if sys.platform.startswith("win"):
        return WindowsCredentialStore()
    if sys.platform.startswith("linux"):
        return SecretServiceCredentialStore()
    return KeyringCredentialStore()


class KeyringCredentialStore:
    """Stores ciphertext blobs in the OS keyring under a fixed service name."""

    def __init__(self, service: str = SERVICE_NAME) -> None:
        self.service = service

    def set_secret(self, account: str, blob: str) -> None:
        try:
            keyring.set_password(self.service, account, blob)
        except NoKeyringError as exc:
            raise StoreUnavailableError(f"Keyring backend unavailable: {exc}") from exc
        except KeyringError as exc:
            logger.error("Failed to save credential for %s: %s", account, exc)
            raise StoreWriteError(f"Failed to save credential for {account}: {exc}") from exc
        logger.info("Saved credential for %s", account)

    def get_secret(self, account: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, account)
        except NoKeyringError as exc:
            raise StoreUnavailableError(f"Keyring backend unavailable: {exc}") from exc
        except KeyringError as exc:
            logger.error("Failed to read credential for %s: %s", account, exc)
            raise StoreUnavailableError(f"Failed to read credential for {account}: {exc}") from exc

    def delete_secret(self, account: str) -> None:
        try:
            keyring.delete_password(self.service, account)
        except PasswordDeleteError as exc:
            raise CredentialNotFoundError(f"No credential stored for {account}") from exc
        except NoKeyringError as exc:
            raise StoreUnavailableError(f"Keyring backend unavailable: {exc}") from exc
        except KeyringError as exc:
            logger.error("Failed to delete credential for %s: %s", account, exc)
            raise StoreWriteError(f"Failed to delete credential for {account}: {exc}") from exc
        logger.info("Deleted credential for %s", account)

    def list_accounts(self) -> List[str]:
        backend = type(keyring.get_keyring()).__name__
        raise StoreUnavailableError(f"Keyring backend {backend} cannot enumerate credentials")


def _win32cred():
    try:
        from win32ctypes.pywin32 import pywintypes, win32cred
    except ImportError as exc:
        raise StoreUnavailableError("The Windows credential vault requires pywin32-ctypes") from exc
    return win32cred, pywintypes


class WindowsCredentialStore:
    """Generic credentials in the Windows vault, named the way keytar names them."""

    def __init__(self, service: str = SERVICE_NAME) -> None:
        self.service = service

    def _target(self, account: str) -> str:
        return f"{self.service}/{account}"

    def _read(self, target: str) -> Optional[dict]:
        win32cred, pywintypes = _win32cred()
        try:
            return win32cred.CredRead(Type=win32cred.CRED_TYPE_GENERIC, TargetName=target)
        except pywintypes.error as exc:
            if exc.winerror == ERROR_NOT_FOUND:
                return None
            raise StoreUnavailableError(f"Failed to read credential {target}: {exc}") from exc

    def set_secret(self, account: str, blob: str) -> None:
        win32cred, pywintypes = _win32cred()
        try:
            raw = blob.encode("ascii")
        except UnicodeEncodeError as exc:
            raise StoreWriteError(f"Credential for {account} is not base64 text") from exc
        if len(raw) % 2:
            raise StoreWriteError(f"Credential for {account} has odd length")
        # keytar stores raw UTF-8 bytes and win32ctypes writes str values as
        # UTF-16, so hand it the bytes already packed as UTF-16 code units.
        credential = {
            "Type": win32cred.CRED_TYPE_GENERIC,
            "TargetName": self._target(account),
            "UserName": account,
            "CredentialBlob": raw.decode("utf-16-le"),
            "Persist": win32cred.CRED_PERSIST_ENTERPRISE,
        }
        try:
            win32cred.CredWrite(credential, 0)
        except pywintypes.error as exc:
            logger.error("Failed to save credential for %s: %s", account, exc)
            raise StoreWriteError(f"Failed to save credential for {account}: {exc}") from exc
        logger.info("Saved credential for %s", account)

    def get_secret(self, account: str) -> Optional[str]:
        credential = self._read(self._target(account))
        if credential is None:
            return None
        return bytes(credential["CredentialBlob"]).decode("utf-8")

    def delete_secret(self, account: str) -> None:
        win32cred, pywintypes = _win32cred()
        targets = [self._target(account), f"{account}@{self.service}"]
        legacy = self._read(self.service)
        if legacy is not None and legacy.get("UserName") == account:
            targets.append(self.service)
        deleted = False
        for target in targets:
            try:
                win32cred.CredDelete(Type=win32cred.CRED_TYPE_GENERIC, TargetName=target)
                deleted = True
            except pywintypes.error as exc:
                if exc.winerror == ERROR_NOT_FOUND:
                    continue
                logger.error("Failed to delete credential %s: %s", target, exc)
                raise StoreWriteError(f"Failed to delete credential for {account}: {exc}") from exc
        if not deleted:
            raise CredentialNotFoundError(f"No credential stored for {account}")
        logger.info("Deleted credential for %s", account)

    def list_accounts(self) -> List[str]:
        win32cred, pywintypes = _win32cred()
        try:
            credentials = win32cred.CredEnumerate(None, 0) or []
        except pywintypes.error as exc:
            if exc.winerror == ERROR_NOT_FOUND:
                return []
            raise StoreUnavailableError(f"Failed to enumerate credentials: {exc}") from exc
        prefix = f"{self.service}/"
        accounts = set()
        for credential in credentials:
            target = credential.get("TargetName") or ""
            if target.startswith(prefix):
                accounts.add(target[len(prefix) :])
            elif target == self.service or target.endswith(f"@{self.service}"):
                username = credential.get("UserName")
                if username:
                    accounts.add(username)
        return sorted(accounts - {""})


def _secretstorage():
    try:
        import secretstorage
    except ImportError as exc:
        raise StoreUnavailableError("Secret Service access requires SecretStorage") from exc
    return secretstorage


class SecretServiceCredentialStore:
    """Items in the default Secret Service collection, tagged the way keytar tags them."""

    def __init__(self, service: str = SERVICE_NAME, collection=None) -> None:
        self.service = service
        self._collection = collection

    def _get_collection(self):
        if self._collection is None:
            secretstorage = _secretstorage()
            try:
                connection = secretstorage.dbus_init()
                collection = secretstorage.get_default_collection(connection)
                if collection.is_locked():
                    collection.unlock()
            except secretstorage.exceptions.SecretStorageException as exc:
                raise StoreUnavailableError(f"Secret Service unavailable: {exc}") from exc
            if collection.is_locked():
                raise StoreUnavailableError("Secret Service collection is locked")
            self._collection = collection
        return self._collection

    def _search(self, attributes: dict) -> list:
        secretstorage = _secretstorage()
        try:
            return list(self._get_collection().search_items(attributes))
        except secretstorage.exceptions.SecretStorageException as exc:
            raise StoreUnavailableError(f"Failed to search credentials: {exc}") from exc

    def _items(self, account: str) -> list:
        items = self._search({"service": self.service, "account": account})
        # Entries written by python-keyring's own Secret Service backend.
        legacy = self._search({"service": self.service, "username": account})
        items.extend(item for item in legacy if "account" not in item.get_attributes())
        return items

    def set_secret(self, account: str, blob: str) -> None:
        secretstorage = _secretstorage()
        attributes = {"xdg:schema": SECRET_SCHEMA, "service": self.service, "account": account}
        try:
            self._get_collection().create_item(f"{self.service}/{account}", attributes, blob.encode("utf-8"), replace=True)
        except secretstorage.exceptions.SecretStorageException as exc:
            logger.error("Failed to save credential for %s: %s", account, exc)
            raise StoreWriteError(f"Failed to save credential for {account}: {exc}") from exc
        logger.info("Saved credential for %s", account)

    def get_secret(self, account: str) -> Optional[str]:
        secretstorage = _secretstorage()
        items = self._items(account)
        if not items:
            return None
        try:
            return items[0].get_secret().decode("utf-8")
        except secretstorage.exceptions.SecretStorageException as exc:
            raise StoreUnavailableError(f"Failed to read credential for {account}: {exc}") from exc

    def delete_secret(self, account: str) -> None:
        secretstorage = _secretstorage()
        items = self._items(account)
        if not items:
            raise CredentialNotFoundError(f"No credential stored for {account}")
        try:
            for item in items:
                item.delete()
        except secretstorage.exceptions.SecretStorageException as exc:
            logger.error("Failed to delete credential for %s: %s", account, exc)
            raise StoreWriteError(f"Failed to delete credential for {account}: {exc}") from exc
        logger.info("Deleted credential for %s", account)

    def list_accounts(self) -> List[str]:
        accounts = set()
        for item in self._search({"service": self.service}):
            attributes = item.get_attributes()
            accounts.add(attributes.get("account") or attributes.get("username") or "")
        return sorted(accounts - {""})
