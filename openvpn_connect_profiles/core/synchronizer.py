"""High-level operations keeping config.json, profile files and credentials in step."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, NoReturn, Optional, Pattern, Tuple, Union

from ..utils.logging import get_logger
from .cipher import CredentialCipher
from .credentials import CredentialStore, default_credential_store
from .document import ConfigDocument
from .errors import (
    AuthenticationError,
    CredentialNotFoundError,
    FileIOError,
    MalformedProfileError,
    PartialCommitError,
    ProfileManagerError,
)
from .identity import ProfileIdentity
from .profile import ProfileRecord, ProfileSummary

logger = get_logger("synchronizer")

PROFILE_SUFFIX = ".ovpn"

NamePattern = Union[str, Pattern[str]]
SourceFile = Tuple[Path, str, ProfileIdentity]


@dataclass
class CredentialAudit:
    """Saved-password flag of a profile compared with the credential store."""

    name: str
    saved_password: bool
    stored: bool
    readable: bool

    @property
    def consistent(self) -> bool:
        return self.saved_password == self.stored and (self.readable or not self.stored)


def _compile(pattern: NamePattern) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


class ProfileSynchronizer:
    """Imports, removes and updates OpenVPN Connect profiles.

    Each operation loads the config file once, changes the in-memory profile
    map and saves once at the end. A failure before the save leaves the config
    file untouched. Credential store calls are not transactional with the
    document and are never rolled back.
    """

    def __init__(
        self,
        config_path: Path,
        store: CredentialStore | None = None,
        cipher: CredentialCipher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config_path = Path(config_path)
        self.store = store if store is not None else default_credential_store()
        self.cipher = cipher or CredentialCipher()
        self._clock = clock

    def import_profiles(self, paths: Iterable[Path], username: str, password: Optional[str] = None) -> int:
        """Import profile files, returning how many files were processed."""
        return self._import(paths, username, password, replace_credentials=False)

    def replace_profiles(self, paths: Iterable[Path], username: str, password: Optional[str] = None) -> int:
        """Wipe every stored credential under the service name, then import.

        Used when the whole profile set is regenerated. The wipe happens only
        after every source file has been read and parsed.
        """
        return self._import(paths, username, password, replace_credentials=True)

    def remove_profiles(self, pattern: NamePattern) -> int:
        regex = _compile(pattern)
        document = ConfigDocument.load(self.config_path)
        names = [name for name in document.profiles if regex.search(name)]
        if not names:
            logger.info("No profiles match %s", regex.pattern)
            return 0
        folder = document.profile_folder
        touched: List[str] = []
        deleted_files: List[Path] = []
        try:
            for name in names:
                # Secret first: a refused delete then leaves the .ovpn file in place.
                if self._forget_secret(name):
                    touched.append(name)
                if self._delete_profile_file(folder, name):
                    deleted_files.append(self._profile_file(folder, name))
                del document.profiles[name]
                logger.info("Removed profile %s", name)
            document.save()
        except ProfileManagerError as exc:
            self._abort("Remove", exc, touched, deleted_files)
        return len(names)

    def update_profiles(
        self,
        pattern: NamePattern,
        username: Optional[str] = None,
        invalidate_password: bool = False,
        clear_saved_flag: bool = False,
    ) -> Optional[int]:
        """Change the username and/or forget the saved password of matching profiles.

        Returns ``None`` without touching anything when there is nothing to
        update. Forgetting a password deletes the stored secret but leaves the
        profile's ``savedPassword`` flag set, as OpenVPN Connect profiles
        updated this way always have; pass ``clear_saved_flag`` to reset it.
        """

        if not username and not invalidate_password:
            logger.info("Nothing to update")
            return None
        regex = _compile(pattern)
        document = ConfigDocument.load(self.config_path)
        count = 0
        touched: List[str] = []
        try:
            for name, data in document.profiles.items():
                if not regex.search(name):
                    continue
                if username:
                    data["username"] = username
                if invalidate_password:
                    if self._forget_secret(name):
                        touched.append(name)
                    if clear_saved_flag:
                        data["savedPassword"] = False
                count += 1
                logger.info("Updated profile %s", name)
            if count:
                document.save()
        except ProfileManagerError as exc:
            self._abort("Update", exc, touched)
        return count

    def list_profiles(self, pattern: NamePattern | None = None) -> List[ProfileSummary]:
        regex = _compile(pattern) if pattern is not None else None
        document = ConfigDocument.load(self.config_path)
        return [
            ProfileSummary.from_dict(name, data)
            for name, data in document.profiles.items()
            if regex is None or regex.search(name)
        ]

    def audit_credentials(self, pattern: NamePattern | None = None) -> List[CredentialAudit]:
        """Compare each profile's saved-password flag with the credential store."""

        results = []
        for summary in self.list_profiles(pattern):
            blob = self.store.get_secret(summary.name)
            readable = False
            if blob is not None:
                try:
                    self.cipher.decrypt(blob, summary.name)
                    readable = True
                except AuthenticationError as exc:
                    logger.warning("Stored credential for %s is unreadable: %s", summary.name, exc)
            results.append(
                CredentialAudit(
                    name=summary.name,
                    saved_password=summary.saved_password,
                    stored=blob is not None,
                    readable=readable,
                )
            )
        return results

    def _import(self, paths: Iterable[Path], username: str, password: Optional[str], replace_credentials: bool) -> int:
        document = ConfigDocument.load(self.config_path)
        sources = [self._read_source(Path(path)) for path in paths]
        folder = document.profile_folder
        touched: List[str] = []
        try:
            if replace_credentials:
                self._wipe_credentials(touched)
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise FileIOError(f"Failed to create profile folder {folder}: {exc}") from exc
            for path, content, identity in sources:
                record = ProfileRecord(
                    identity=identity,
                    content=content,
                    file_path=str(path),
                    username=username,
                    saved_password=bool(password),
                    last_modified=int(self._clock() * 1000),
                )
                if record.name in document.profiles:
                    logger.info("Overwriting profile %s from %s", record.name, path)
                document.profiles[record.name] = record.to_dict()
                self._write_profile_file(folder, record.name, content)
                if password:
                    self.store.set_secret(record.name, self.cipher.encrypt(password, record.name))
                    touched.append(record.name)
                logger.info("Imported %s as %s", path, record.name)
            document.save()
        except ProfileManagerError as exc:
            self._abort("Import", exc, touched)
        return len(sources)

    def _abort(self, operation: str, exc: ProfileManagerError, touched: List[str], deleted_files: Iterable[Path] = ()) -> NoReturn:
        """Re-raise ``exc``, as :class:`PartialCommitError` when side effects already happened."""

        deleted_files = [str(path) for path in deleted_files]
        if not touched and not deleted_files:
            raise exc
        details = []
        if touched:
            details.append(f"credential store already changed for: {', '.join(touched)}")
        if deleted_files:
            details.append(f"profile files already deleted: {', '.join(deleted_files)}")
        logger.warning("%s aborted after changes that were not rolled back; %s", operation, "; ".join(details))
        raise PartialCommitError(f"{exc} ({'; '.join(details)})", touched) from exc

    def _read_source(self, path: Path) -> SourceFile:
        try:
            with path.open("r", encoding="utf-8", newline="") as fh:
                content = fh.read()
        except UnicodeDecodeError as exc:
            raise MalformedProfileError(f"{path}: not UTF-8 text") from exc
        except OSError as exc:
            raise FileIOError(f"Failed to read profile {path}: {exc}") from exc
        return path, content, ProfileIdentity.from_file(path, content)

    def _wipe_credentials(self, touched: List[str]) -> None:
        accounts = self.store.list_accounts()
        logger.warning("Deleting %d stored credential(s) before re-import", len(accounts))
        for account in accounts:
            if self._forget_secret(account):
                touched.append(account)

    def _forget_secret(self, name: str) -> bool:
        """Delete the stored secret for ``name``, returning whether one existed."""
        try:
            self.store.delete_secret(name)
        except CredentialNotFoundError:
            logger.debug("No stored credential for %s", name)
            return False
        return True

    def _profile_file(self, folder: Path, name: str) -> Path:
        if "/" in name or "\\" in name:
            raise FileIOError(f"Profile name {name!r} cannot be used as a file name")
        return folder / f"{name}{PROFILE_SUFFIX}"

    def _write_profile_file(self, folder: Path, name: str, content: str) -> None:
        target = self._profile_file(folder, name)
        try:
            with target.open("w", encoding="utf-8", newline="") as fh:
                fh.write(content)
        except OSError as exc:
            raise FileIOError(f"Failed to write {target}: {exc}") from exc

    def _delete_profile_file(self, folder: Path, name: str) -> bool:
        target = self._profile_file(folder, name)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("Profile file %s was already missing", target)
            return False
        except OSError as exc:
            raise FileIOError(f"Failed to delete {target}: {exc}") from exc
        return True
