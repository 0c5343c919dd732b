"""Exceptions raised while managing OpenVPN Connect profiles."""

from __future__ import annotations

from typing import Iterable


class ProfileManagerError(Exception):
    """Base exception for profile manager errors."""

    pass


class ConfigNotFoundError(ProfileManagerError):
    """The OpenVPN Connect config file does not exist."""

    pass


class ConfigParseError(ProfileManagerError):
    """One of the JSON layers of the config file is malformed."""

    pass


class MalformedProfileError(ProfileManagerError):
    """Profile file has no usable ``remote`` directive."""

    pass


class FileIOError(ProfileManagerError):
    """Copying or deleting a stored ``.ovpn`` file failed."""

    pass


class AuthenticationError(ProfileManagerError):
    """Ciphertext blob could not be authenticated for the given profile."""

    pass


class CredentialStoreError(ProfileManagerError):
    """Base exception for secure storage failures."""

    pass


class StoreUnavailableError(CredentialStoreError):
    """No usable secure storage backend."""

    pass


class StoreWriteError(CredentialStoreError):
    """Secure storage refused to write or delete a secret."""

    pass


class CredentialNotFoundError(CredentialStoreError):
    """No secret is stored for the account."""

    pass


class PartialCommitError(ProfileManagerError):
    """Operation aborted after some credentials were already written."""

    def __init__(self, message: str, committed: Iterable[str]) -> None:
        super().__init__(message)
        self.committed = list(committed)
