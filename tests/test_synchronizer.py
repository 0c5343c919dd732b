"""Tests for importing, removing and updating profiles."""

from __future__ import annotations

import pytest

from openvpn_connect_profiles.core.cipher import CredentialCipher
from openvpn_connect_profiles.core.errors import (
    ConfigNotFoundError,
    MalformedProfileError,
    PartialCommitError,
    StoreWriteError,
)
from openvpn_connect_profiles.core.synchronizer import ProfileSynchronizer

from conftest import DummyCredentialStore, build_config_text

OFFICE = "PC 203.0.113.5 office"
HOME = "PC 198.51.100.7 home"


@pytest.fixture()
def synchronizer(config_path, store):
    return ProfileSynchronizer(config_path, store=store, clock=lambda: 1700000000.5)


@pytest.fixture()
def office(write_profile):
    return write_profile("office.ovpn", "client\nremote 203.0.113.5 1194\nproto udp\n")


@pytest.fixture()
def home(write_profile):
    return write_profile("home.conf", "client\nremote 198.51.100.7\n")


def test_import_without_password(synchronizer, config_path, store, office, read_profiles):
    count = synchronizer.import_profiles([office], "alice")

    assert count == 1
    profiles = read_profiles(config_path)
    record = profiles[OFFICE]
    assert record["name"] == record["profileName"] == OFFICE
    assert record["profileDisplayName"] == "203.0.113.5 office"
    assert record["username"] == "alice"
    assert record["savedPassword"] is False
    assert record["hostname"] == "203.0.113.5"
    assert record["profileConfig"]["remotePort"] == "1194"
    assert record["profileConfig"]["remoteHost"] == "203.0.113.5"
    assert record["config"]["content"] == office.read_text()
    assert record["mergedConfig"]["profileContent"] == office.read_text()
    assert record["mergedConfig"]["status"] == "MERGE_SUCCESS"
    assert record["filePath"] == str(office)
    assert record["lastModified"] == 1700000000500
    assert record["selectedServer"] == {"server": None}
    assert store.secrets == {}
    copied = config_path.parent / "profiles" / f"{OFFICE}.ovpn"
    assert copied.read_text() == office.read_text()


def test_import_with_password_stores_encrypted_blob(synchronizer, config_path, store, office, home, read_profiles):
    count = synchronizer.import_profiles([office, home], "alice", "hunter2")

    assert count == 2
    profiles = read_profiles(config_path)
    assert set(profiles) == {OFFICE, HOME}
    assert profiles[HOME]["profileConfig"]["remotePort"] == "1194"
    assert all(record["savedPassword"] is True for record in profiles.values())
    assert set(store.secrets) == {OFFICE, HOME}
    assert store.secrets[OFFICE] != "hunter2"
    assert CredentialCipher().decrypt(store.secrets[OFFICE], OFFICE) == "hunter2"
    assert sorted(p.name for p in (config_path.parent / "profiles").iterdir()) == [f"{HOME}.ovpn", f"{OFFICE}.ovpn"]


def test_import_duplicate_names_last_wins(synchronizer, config_path, profile_dir, write_profile, read_profiles):
    first = write_profile("office.ovpn", "remote 203.0.113.5 1194\n# first\n")
    (profile_dir / "other").mkdir()
    second = profile_dir / "other" / "office.ovpn"
    second.write_text("remote 203.0.113.5 1194\n# second\n", encoding="utf-8")

    count = synchronizer.import_profiles([first, second], "alice")

    assert count == 2
    profiles = read_profiles(config_path)
    assert list(profiles) == [OFFICE]
    assert profiles[OFFICE]["config"]["content"].endswith("# second\n")


def test_import_overwrites_existing_record(synchronizer, config_path, office, read_profiles):
    synchronizer.import_profiles([office], "alice")
    synchronizer.import_profiles([office], "bob")

    profiles = read_profiles(config_path)
    assert list(profiles) == [OFFICE]
    assert profiles[OFFICE]["username"] == "bob"


def test_import_malformed_profile_changes_nothing(synchronizer, config_path, store, office, write_profile):
    broken = write_profile("broken.ovpn", "client\ndev tun\n")
    original = config_path.read_bytes()

    with pytest.raises(MalformedProfileError, match="broken.ovpn"):
        synchronizer.import_profiles([office, broken], "alice", "hunter2")

    assert config_path.read_bytes() == original
    assert store.secrets == {}
    assert list((config_path.parent / "profiles").iterdir()) == []


def test_import_store_failure_reports_partial_commit(config_path, office, home):
    store = DummyCredentialStore(fail_on=HOME)
    synchronizer = ProfileSynchronizer(config_path, store=store)
    original = config_path.read_bytes()

    with pytest.raises(PartialCommitError) as excinfo:
        synchronizer.import_profiles([office, home], "alice", "hunter2")

    assert excinfo.value.committed == [OFFICE]
    assert set(store.secrets) == {OFFICE}
    assert config_path.read_bytes() == original


def test_import_requires_config(tmp_path, store, office):
    synchronizer = ProfileSynchronizer(tmp_path / "missing" / "config.json", store=store)

    with pytest.raises(ConfigNotFoundError):
        synchronizer.import_profiles([office], "alice")


def test_import_creates_profile_folder(tmp_path, store, office):
    path = tmp_path / "fresh" / "config.json"
    path.parent.mkdir()

    path.write_text(build_config_text(), encoding="utf-8")

    ProfileSynchronizer(path, store=store).import_profiles([office], "alice")

    assert (path.parent / "profiles" / f"{OFFICE}.ovpn").is_file()


def test_replace_wipes_namespace_before_import(synchronizer, store, office):
    store.secrets = {"PC stale old": "x", "PC stale other": "y"}

    count = synchronizer.replace_profiles([office], "alice", "hunter2")

    assert count == 1
    assert set(store.secrets) == {OFFICE}
    assert {"PC stale old", "PC stale other"} <= set(store.deleted)


def test_replace_does_not_wipe_when_parsing_fails(synchronizer, store, write_profile):
    broken = write_profile("broken.ovpn", "dev tun\n")
    store.secrets = {"PC stale old": "x"}

    with pytest.raises(MalformedProfileError):
        synchronizer.replace_profiles([broken], "alice", "hunter2")

    assert store.secrets == {"PC stale old": "x"}


def test_remove_profile_without_secret(synchronizer, config_path, store, office, read_profiles):
    synchronizer.import_profiles([office], "alice")

    count = synchronizer.remove_profiles("office")

    assert count == 1
    assert read_profiles(config_path) == {}
    assert store.deleted == [OFFICE]
    assert not (config_path.parent / "profiles" / f"{OFFICE}.ovpn").exists()


def test_remove_deletes_secret(synchronizer, config_path, store, office, home, read_profiles):
    synchronizer.import_profiles([office, home], "alice", "hunter2")

    count = synchronizer.remove_profiles(r"^PC 198\.")

    assert count == 1
    assert list(read_profiles(config_path)) == [OFFICE]
    assert set(store.secrets) == {OFFICE}


def test_remove_tolerates_missing_profile_file(synchronizer, config_path, office, read_profiles):
    synchronizer.import_profiles([office], "alice")
    (config_path.parent / "profiles" / f"{OFFICE}.ovpn").unlink()

    assert synchronizer.remove_profiles("office") == 1
    assert read_profiles(config_path) == {}


def test_remove_matching_nothing(synchronizer, config_path, office):
    synchronizer.import_profiles([office], "alice")
    before = config_path.read_bytes()

    assert synchronizer.remove_profiles("nomatch") == 0
    assert config_path.read_bytes() == before


def test_remove_store_failure_keeps_remaining_files(config_path, store, office, home):
    synchronizer = ProfileSynchronizer(config_path, store=store)
    synchronizer.import_profiles([office, home], "alice", "hunter2")
    before = config_path.read_bytes()
    folder = config_path.parent / "profiles"
    store.fail_delete_on = HOME

    with pytest.raises(PartialCommitError) as excinfo:
        synchronizer.remove_profiles("PC")

    assert excinfo.value.committed == [OFFICE]
    assert str(folder / f"{OFFICE}.ovpn") in str(excinfo.value)
    assert set(store.secrets) == {HOME}
    assert config_path.read_bytes() == before
    assert not (folder / f"{OFFICE}.ovpn").exists()
    assert (folder / f"{HOME}.ovpn").is_file()


def test_remove_failure_before_any_change_is_not_partial(config_path, store, office, home):
    synchronizer = ProfileSynchronizer(config_path, store=store)
    synchronizer.import_profiles([office, home], "alice", "hunter2")
    store.fail_delete_on = OFFICE

    with pytest.raises(StoreWriteError):
        synchronizer.remove_profiles("PC")

    assert (config_path.parent / "profiles" / f"{OFFICE}.ovpn").is_file()


def test_update_store_failure_reports_partial_commit(config_path, store, office, home):
    synchronizer = ProfileSynchronizer(config_path, store=store)
    synchronizer.import_profiles([office, home], "alice", "hunter2")
    before = config_path.read_bytes()
    store.fail_delete_on = HOME

    with pytest.raises(PartialCommitError) as excinfo:
        synchronizer.update_profiles("PC", username="bob", invalidate_password=True)

    assert excinfo.value.committed == [OFFICE]
    assert set(store.secrets) == {HOME}
    assert config_path.read_bytes() == before


def test_update_nothing_requested_does_not_load(tmp_path, store):
    synchronizer = ProfileSynchronizer(tmp_path / "missing.json", store=store)

    assert synchronizer.update_profiles("office") is None


def test_update_username(synchronizer, config_path, office, home, read_profiles):
    synchronizer.import_profiles([office, home], "alice")

    count = synchronizer.update_profiles("office", username="carol")

    assert count == 1
    profiles = read_profiles(config_path)
    assert profiles[OFFICE]["username"] == "carol"
    assert profiles[HOME]["username"] == "alice"


def test_update_invalidate_password_keeps_saved_flag(synchronizer, config_path, store, office, read_profiles):
    # Forgetting the password leaves savedPassword set unless explicitly cleared.
    synchronizer.import_profiles([office], "alice", "hunter2")

    count = synchronizer.update_profiles("office", invalidate_password=True)

    assert count == 1
    assert store.secrets == {}
    assert read_profiles(config_path)[OFFICE]["savedPassword"] is True


def test_update_invalidate_password_can_clear_flag(synchronizer, config_path, store, office, read_profiles):
    synchronizer.import_profiles([office], "alice", "hunter2")

    synchronizer.update_profiles("office", invalidate_password=True, clear_saved_flag=True)

    assert store.secrets == {}
    assert read_profiles(config_path)[OFFICE]["savedPassword"] is False


def test_update_invalidate_without_secret(synchronizer, store, office):
    synchronizer.import_profiles([office], "alice")

    assert synchronizer.update_profiles("office", invalidate_password=True) == 1
    assert store.deleted == [OFFICE]


def test_list_profiles(synchronizer, office, home):
    synchronizer.import_profiles([office, home], "alice", "hunter2")

    summaries = synchronizer.list_profiles("home")

    assert [(s.name, s.host, s.port, s.username, s.saved_password) for s in summaries] == [
        (HOME, "198.51.100.7", "1194", "alice", True)
    ]


def test_audit_reports_desync(synchronizer, store, office, home):
    synchronizer.import_profiles([office, home], "alice", "hunter2")
    synchronizer.update_profiles("office", invalidate_password=True)
    store.secrets[HOME] = CredentialCipher().encrypt("hunter2", OFFICE)

    results = {result.name: result for result in synchronizer.audit_credentials()}

    assert results[OFFICE].saved_password is True
    assert results[OFFICE].stored is False
    assert results[OFFICE].consistent is False
    assert results[HOME].stored is True
    assert results[HOME].readable is False
    assert results[HOME].consistent is False


def test_import_then_remove_office_profile(synchronizer, config_path, store, write_profile, read_profiles):
    office = write_profile("office.ovpn", "remote 203.0.113.5 1194\n")

    synchronizer.import_profiles([office], "alice")
    record = read_profiles(config_path)[OFFICE]
    assert record["username"] == "alice"
    assert record["savedPassword"] is False
    assert store.secrets == {}

    assert synchronizer.remove_profiles("office") == 1
    assert read_profiles(config_path) == {}
